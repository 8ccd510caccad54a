"""Headless entrypoint: run the ingestion pipeline and log periodic summaries."""

from __future__ import annotations

import argparse
import asyncio
from typing import Optional

from .config.settings import get_app_config
from .datalake.schemas import SortKey, ViewQuery
from .monitoring import bootstrap_observability
from .monitoring.logger import get_logger
from .pipeline import TokenPipeline
from .utils.constants import UPDATE_INTERVAL_PRESETS

logger = get_logger(__name__)


def log_summary(pipeline: TokenPipeline) -> None:
    view = pipeline.query(ViewQuery(sort_key=SortKey.MARKET_CAP))
    status = pipeline.status()
    logger.info(
        "%d tokens stored, %d buffered, connected=%s, total mcap %.2f SOL, avg risk %.1f%%",
        status["stored"],
        status["buffered"],
        status["connection"]["connected"],
        view.summary.total_market_cap,
        view.summary.average_risk_percentage,
    )
    for item in view.items[:3]:
        meta = item.record.metadata
        logger.info(
            "  %s (%s) mcap=%.2f score=%d risk=%s",
            meta.name or "?",
            meta.symbol or "?",
            item.record.market_cap_sol,
            item.score,
            item.risk.level.value,
        )


async def run_async(
    *,
    update_interval: Optional[int] = None,
    report_every: float = 30.0,
    duration: Optional[float] = None,
) -> None:
    config = get_app_config()
    bootstrap_observability(config)
    pipeline = TokenPipeline(config)
    if update_interval is not None:
        pipeline.set_update_interval(update_interval)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + duration if duration is not None else None
    async with pipeline:
        while deadline is None or loop.time() < deadline:
            await asyncio.sleep(max(report_every, 0.1))
            try:
                log_summary(pipeline)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Summary failed: %s", exc)


def main() -> None:
    parser = argparse.ArgumentParser(description="Stream newly launched tokens and score them")
    parser.add_argument(
        "--update-interval",
        type=int,
        choices=sorted(UPDATE_INTERVAL_PRESETS),
        default=None,
        help="Seconds between buffer flushes (overrides configuration).",
    )
    parser.add_argument(
        "--report-every",
        type=float,
        default=30.0,
        help="Seconds between summary log lines (default: 30)",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds instead of running until interrupted.",
    )
    args = parser.parse_args()
    try:
        asyncio.run(
            run_async(
                update_interval=args.update_interval,
                report_every=args.report_every,
                duration=args.duration,
            )
        )
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
