"""
Run one migration job configured through environment settings.

Exit codes:
    0 - run COMPLETED and the artifact was published
    1 - run FAILED
    2 - configuration error (nothing was read)
    3 - run STOPPED
"""

import asyncio
import signal
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import async_session_maker, create_engine, engine as tracking_engine
from core.exceptions import ConfigurationError
from core.logging import setup_logging
from migration.run_store import RunStore
from migration.runner import MigrationRunner
from models.base import RunStatus

logger = logging.getLogger(__name__)

EXIT_CODES = {
    RunStatus.COMPLETED.value: 0,
    RunStatus.FAILED.value: 1,
    RunStatus.STOPPED.value: 3,
}


async def run_migration(track_runs: bool = True) -> int:
    source_engine = create_engine(settings.source_database_url)
    run_store = RunStore(async_session_maker) if track_runs else None

    try:
        try:
            runner = MigrationRunner.from_settings(
                settings, source_engine=source_engine, run_store=run_store
            )
        except ConfigurationError as e:
            logger.error(f"Invalid configuration: {e}")
            return 2

        # SIGINT / SIGTERM stop the run at the next chunk boundary
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, runner.cancel)
            except NotImplementedError:
                logger.debug("Signal handlers are not supported on this platform")
                break

        result = await runner.run()

        if result.artifact:
            logger.info(f"Artifact ready: {result.artifact}")
        logger.info(
            f"Run {result.run_id} {result.status}: read={result.records_read}, "
            f"written={result.records_written}, skipped={result.records_skipped}"
        )
        return EXIT_CODES.get(result.status, 1)

    finally:
        await source_engine.dispose()
        await tracking_engine.dispose()


if __name__ == "__main__":
    setup_logging()
    track = "--no-tracking" not in sys.argv[1:]
    sys.exit(asyncio.run(run_migration(track_runs=track)))
