# pdfpipe/cli.py
"""
Batch driver:

    python -m pdfpipe.cli [--pdfId ID] [--limit N] [--chunkSize N] [--chunkOverlap N]
                          [--retryPolicy restart|resume] [--reclaimStaleMinutes N] [--initDb]

Exits 0 when the run finished (documents that failed individually are recorded on
their rows and logged), 1 on configuration errors or anything that aborts the run.
"""
import argparse
import asyncio
import logging
import sys
from datetime import timedelta
from typing import List, Optional

from pdfpipe.config import Settings
from pdfpipe.errors import ConfigurationError, InvalidChunkParams
from pdfpipe.runner import open_runtime, run_batch

logger = logging.getLogger("pdfpipe")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="pdfpipe", description="Run pending PDFs through the conversion pipeline")
    ap.add_argument("--pdfId", dest="pdf_id", default=None, help="Process only this document")
    ap.add_argument("--limit", type=int, default=None, help="Max documents per run (default: BATCH_LIMIT)")
    ap.add_argument("--chunkSize", dest="chunk_size", type=int, default=None)
    ap.add_argument("--chunkOverlap", dest="chunk_overlap", type=int, default=None)
    ap.add_argument("--retryPolicy", dest="retry_policy", choices=["restart", "resume"], default=None)
    ap.add_argument(
        "--reclaimStaleMinutes",
        dest="reclaim_stale_minutes",
        type=int,
        default=None,
        help="First reset documents stuck in a processing status for longer than this",
    )
    ap.add_argument("--initDb", dest="init_db", action="store_true", help="Create tables before running (dev only)")
    return ap


async def _run(args: argparse.Namespace, settings: Settings) -> None:
    async with open_runtime(
        settings,
        create_tables=args.init_db,
        chunk_size=args.chunk_size,
        chunk_overlap=args.chunk_overlap,
        retry_policy=args.retry_policy,
    ) as runtime:
        if args.reclaim_stale_minutes is not None:
            reclaimed = await runtime.router.reclaim_stale(timedelta(minutes=args.reclaim_stale_minutes))
            logger.info("Reclaimed %d stale document(s)", len(reclaimed))

        limit = args.limit if args.limit is not None else settings.batch_limit
        await run_batch(
            runtime.router,
            runtime.sessionmaker,
            limit=limit,
            document_id=args.pdf_id,
            max_iterations=settings.pipeline_max_iterations,
        )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = Settings()
    except ValueError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error("Invalid configuration: %s", e)
        return 1

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.limit is not None and args.limit <= 0:
        logger.error("--limit must be a positive integer")
        return 1

    try:
        asyncio.run(_run(args, settings))
    except (ConfigurationError, InvalidChunkParams) as e:
        logger.error("%s", e)
        return 1
    except Exception:
        logger.exception("Pipeline run aborted")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
