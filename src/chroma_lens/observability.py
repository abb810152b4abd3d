"""Observability: structured fetch logs (slice, collection, generation, latency_ms) and a metrics stub."""

from __future__ import annotations

import logging
from typing import Any

_LOGGER = logging.getLogger("chroma_lens")

# Metrics stub: fetches[slice] = count, errors[slice] = count, stale_dropped[slice] = count,
# tool_calls[name] = count
METRICS: dict[str, dict[str, int]] = {"fetches": {}, "errors": {}, "stale_dropped": {}, "tool_calls": {}}


def get_logger() -> logging.Logger:
    return _LOGGER


def log_fetch(
    slice_name: str,
    collection: str | None,
    generation: int,
    latency_ms: float,
    error: str | None = None,
    stale: bool = False,
    extra: dict[str, Any] | None = None,
) -> None:
    """Emit a structured fetch log and update the metrics stub."""
    payload: dict[str, Any] = {
        "slice": slice_name,
        "collection": collection,
        "generation": generation,
        "latency_ms": round(latency_ms, 2),
        "stale": stale,
    }
    if error:
        payload["error"] = error
    if extra:
        payload.update(extra)

    if stale:
        _LOGGER.debug("fetch_stale", extra=payload)
        METRICS["stale_dropped"][slice_name] = METRICS["stale_dropped"].get(slice_name, 0) + 1
        return

    if error:
        _LOGGER.warning("fetch_failed", extra=payload)
        METRICS["errors"][slice_name] = METRICS["errors"].get(slice_name, 0) + 1
    else:
        _LOGGER.info("fetch", extra=payload)
    METRICS["fetches"][slice_name] = METRICS["fetches"].get(slice_name, 0) + 1


def log_tool_invocation(
    tool: str,
    latency_ms: float,
    error: str | None = None,
    extra: dict[str, Any] | None = None,
) -> None:
    """Emit a structured MCP tool log and count the call."""
    payload: dict[str, Any] = {"tool": tool, "latency_ms": round(latency_ms, 2)}
    if error:
        payload["error"] = error
    if extra:
        payload.update(extra)
    _LOGGER.info("tool_invocation", extra=payload)
    METRICS["tool_calls"][tool] = METRICS["tool_calls"].get(tool, 0) + 1


def metrics_snapshot() -> dict[str, dict[str, int]]:
    """Return current counters (for the health tool)."""
    return {k: dict(v) for k, v in METRICS.items()}


def reset_metrics() -> None:
    for counters in METRICS.values():
        counters.clear()


def configure_logging(level: str = "INFO") -> None:
    """Send logs to stderr; stdout carries JSON output and the MCP stdio transport."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
