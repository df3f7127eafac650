import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .run_settings import RunSettings

logger = logging.getLogger(__name__)


class TriggerDecision(str, Enum):
    PROCEED = "proceed"
    DISABLED = "disabled"
    NOT_TIME = "not_time"
    ALREADY_RUN = "already_run"


@dataclass(frozen=True)
class TriggerResult:
    decision: TriggerDecision
    message: str = ""

    @property
    def proceed(self) -> bool:
        return self.decision is TriggerDecision.PROCEED


def minutes_from_schedule(now: datetime, run_settings: RunSettings) -> int:
    """Signed minutes between `now` and today's scheduled time (negative = early)."""
    scheduled = now.replace(
        hour=run_settings.checkout_time.hour,
        minute=run_settings.checkout_time.minute,
        second=0,
        microsecond=0,
    )
    return int((now - scheduled).total_seconds() / 60)


def evaluate_trigger(now: datetime, manual: bool, run_settings: RunSettings) -> TriggerResult:
    """
    Decides whether an invocation should sweep bookings.

    `now` must already be expressed in the run settings' timezone. A manual
    invocation skips the time-of-day and once-per-day gates but never the
    enabled flag.
    """
    if not run_settings.enabled:
        return TriggerResult(TriggerDecision.DISABLED, "Auto checkout is disabled")

    if manual:
        logger.info("Manual auto checkout requested; skipping schedule gates")
        return TriggerResult(TriggerDecision.PROCEED)

    scheduled = run_settings.checkout_time.strftime("%H:%M")
    current = now.strftime("%H:%M")
    delta = minutes_from_schedule(now, run_settings)
    if abs(delta) > run_settings.grace_minutes:
        return TriggerResult(
            TriggerDecision.NOT_TIME,
            f"Not time for auto checkout. Current: {current}, Scheduled: {scheduled} "
            f"(+/- {run_settings.grace_minutes} min)",
        )

    last_run = run_settings.last_run
    if last_run is not None and last_run.date() == now.date():
        return TriggerResult(TriggerDecision.ALREADY_RUN, "Auto checkout already executed today")

    return TriggerResult(TriggerDecision.PROCEED)
