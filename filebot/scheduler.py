"""
Maintenance Scheduler - periodic reclamation of sessions and artifacts.

Two APScheduler interval jobs on a background thread:
- session sweep: drop conversations idle past the timeout (every 5 minutes)
- artifact sweep: delete staged files past the retention threshold (every 30
  minutes, plus once at startup to clear leftovers from a previous run)
"""

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from filebot.artifacts import ArtifactManager
from filebot.session_store import SessionStore


logger = logging.getLogger(__name__)


class MaintenanceScheduler:
    """Owns the sweep timers; started and stopped with the application"""

    def __init__(
        self,
        store: SessionStore,
        artifacts: ArtifactManager,
        session_interval_minutes: int = 5,
        artifact_interval_minutes: int = 30,
    ):
        self.store = store
        self.artifacts = artifacts
        self.session_interval_minutes = session_interval_minutes
        self.artifact_interval_minutes = artifact_interval_minutes
        self._scheduler: Optional[BackgroundScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def sweep_sessions(self) -> int:
        try:
            return self.store.sweep_expired()
        except Exception as e:
            logger.error(f"[SESSION CLEANUP] Sweep failed: {e}", exc_info=e)
            return 0

    def sweep_artifacts(self) -> int:
        try:
            return self.artifacts.sweep_expired()
        except Exception as e:
            logger.error(f"[ARTIFACT SWEEP] Sweep failed: {e}", exc_info=e)
            return 0

    def start(self) -> None:
        """Run the startup artifact sweep, then schedule both interval jobs"""
        if self.running:
            return

        self.artifacts.ensure_staging_dir()
        self.sweep_artifacts()

        scheduler = BackgroundScheduler()
        scheduler.add_job(
            self.sweep_sessions, "interval",
            minutes=self.session_interval_minutes, id="session_sweep",
        )
        scheduler.add_job(
            self.sweep_artifacts, "interval",
            minutes=self.artifact_interval_minutes, id="artifact_sweep",
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(
            f"✓ Maintenance scheduler started (sessions every {self.session_interval_minutes} min, "
            f"artifacts every {self.artifact_interval_minutes} min)"
        )

    def shutdown(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("✓ Maintenance scheduler stopped")
