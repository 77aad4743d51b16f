"""Sweep Scheduler - Periodic timeout and reminder sweeps

The engine never drives its own timers. This scheduler triggers:
- sweep_timeouts() every sweep_interval_seconds
- send_reminders() every reminder_check_minutes
"""
from typing import Any, Dict, Optional, TYPE_CHECKING
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import settings
from ..utils.logger import get_logger, set_correlation_id
from ..utils.idgen import generate_correlation_id

if TYPE_CHECKING:
    from ..engine.engine import WorkflowEngine

logger = get_logger(__name__)


class SweepScheduler:
    """
    APScheduler wrapper around the engine sweeps

    Each job runs at most once at a time; a missed run is coalesced into
    the next one. Sweeps are safe to run from several processes because the
    engine persists with optimistic version checks.
    """

    def __init__(
        self,
        engine: "WorkflowEngine",
        sweep_interval_seconds: Optional[int] = None,
        reminder_check_minutes: Optional[int] = None
    ):
        self.engine = engine
        self.sweep_interval_seconds = sweep_interval_seconds or settings.sweep_interval_seconds
        self.reminder_check_minutes = reminder_check_minutes or settings.reminder_check_minutes
        self.scheduler: Optional[BackgroundScheduler] = None
        self._is_running = False

    def start(self) -> None:
        """Start the scheduler"""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = BackgroundScheduler(timezone="UTC")

        self.scheduler.add_job(
            self._sweep_timeouts,
            trigger=IntervalTrigger(seconds=self.sweep_interval_seconds),
            id="sweep_timeouts",
            name="Apply step timeout policies",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )

        self.scheduler.add_job(
            self._send_reminders,
            trigger=IntervalTrigger(minutes=self.reminder_check_minutes),
            id="send_reminders",
            name="Send approval reminders",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )

        self.scheduler.start()
        self._is_running = True
        logger.info(
            f"Sweep scheduler started (timeouts every {self.sweep_interval_seconds}s, "
            f"reminders every {self.reminder_check_minutes}m)"
        )

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
        self._is_running = False
        logger.info("Sweep scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    def run_once(self) -> Dict[str, Any]:
        """Run both sweeps immediately and report what changed"""
        return {
            "expired_or_advanced": self._sweep_timeouts(),
            "reminded": self._send_reminders()
        }

    def _sweep_timeouts(self) -> list:
        set_correlation_id(generate_correlation_id())
        try:
            changed = self.engine.sweep_timeouts()
            if changed:
                logger.info(f"Timeout sweep changed {len(changed)} instances")
            return changed
        except Exception as e:
            logger.error(f"Error in timeout sweep job: {e}")
            return []

    def _send_reminders(self) -> list:
        set_correlation_id(generate_correlation_id())
        try:
            return self.engine.send_reminders()
        except Exception as e:
            logger.error(f"Error in reminder job: {e}")
            return []
