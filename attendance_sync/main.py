"""ZK Attendance Sync - Main entry point."""

import logging
import signal
import threading
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from dotenv import load_dotenv

from . import __version__
from .config import Config, setup_logging
from .sync import CycleReport, SyncEngine

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "sync_job"


class SyncService:
    """Owns the scheduler that drives sync cycles.

    Runs one cycle on startup, then one per interval. The job is limited
    to a single instance and coalesced, so cycles never overlap and a slow
    cycle only delays the next tick.
    """

    def __init__(
        self,
        config: Config,
        engine: SyncEngine,
        scheduler: Optional[BackgroundScheduler] = None,
    ) -> None:
        self.config = config
        self.engine = engine
        self.scheduler = scheduler or BackgroundScheduler()
        self._shutdown_event = threading.Event()

    def start(self) -> None:
        """Run the initial sync and start the periodic scheduler."""
        logger.info("Performing initial sync...")
        self.run_once()

        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(seconds=self.config.sync.interval_seconds),
            id=SYNC_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(
            f"Starting periodic sync every {self.config.sync.interval_minutes}m..."
        )

    def run_once(self) -> Optional[CycleReport]:
        """Perform a sync cycle; nothing raised here may stop the service."""
        try:
            return self.engine.run_cycle()
        except Exception:
            logger.exception("Sync cycle crashed")
            return None

    def wait(self) -> None:
        """Block until :meth:`stop` is called."""
        self._shutdown_event.wait()

    def stop(self) -> None:
        """Shut down the scheduler if running."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self._shutdown_event.set()

    def _signal_handler(self, signum, frame) -> None:
        logger.info(f"Received signal {signum}, shutting down...")
        self.stop()

    def run(self) -> None:
        """Start syncing and block until SIGINT/SIGTERM."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)
        self.start()
        try:
            self.wait()
        finally:
            self.stop()
            logger.info(f"Final status: {self.engine.get_status()}")


def main() -> None:
    env_loaded = load_dotenv()
    setup_logging()
    if not env_loaded:
        logger.info("No .env file found. Using environment variables directly.")

    config = Config.from_env()
    if config.debug_mode:
        logging.getLogger().setLevel(logging.DEBUG)
    logger.info(f"ZK Attendance Sync {__version__} starting...")

    engine = SyncEngine.from_config(config)
    SyncService(config, engine).run()


if __name__ == "__main__":
    main()
