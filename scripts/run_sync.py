"""
Script to run one partner sync, optionally restricted to matching partners
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import dispose_engine, session_scope
from core.logging import setup_logging
from ingestion.loaders.postgres_loader import PostgresCatalogStore, PostgresSyncLogStore
from ingestion.runner import SyncOrchestrator, summarize_partners

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Sync affiliate partner feeds into the catalog")
    parser.add_argument(
        "--partner",
        help="Only sync partners whose name contains this text (e.g. 'Fnac')",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=None,
        help=f"Seconds between partners (default {settings.INTER_PARTNER_DELAY_SECONDS})",
    )
    return parser.parse_args(argv)


async def run_sync(partner=None, delay=None) -> int:
    """Run the sync; returns a process exit code"""
    try:
        async with session_scope() as session:
            orchestrator = SyncOrchestrator(
                PostgresCatalogStore(session),
                PostgresSyncLogStore(session),
                inter_partner_delay=delay,
            )
            run = await orchestrator.run_all(partner_filter=partner)
    except Exception as e:
        logger.error(f"Sync pipeline error: {str(e)}")
        return 1
    finally:
        await dispose_engine()

    for line in summarize_partners(run):
        logger.info(
            f"{line['partner']}: {line['status']} processed={line['processed']} "
            f"added={line['added']} skipped={line['skipped']} errors={line['errors']}"
            + (f" ({line['error']})" if line["error"] else "")
        )

    if run.error_message:
        logger.error(f"Sync aborted: {run.error_message}")
        return 1
    logger.info("All partner syncs completed")
    return 0


if __name__ == "__main__":
    setup_logging()
    args = parse_args()
    sys.exit(asyncio.run(run_sync(args.partner, args.delay)))
