import csv
from datetime import datetime
from decimal import Decimal
from enum import Enum
from io import StringIO
from typing import Optional

from pydantic import BaseModel, Field

from ..models import AutoCheckoutLog

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class RunStatus(str, Enum):
    DISABLED = "disabled"
    NOT_TIME = "not_time"
    ALREADY_RUN = "already_run"
    NO_BOOKINGS = "no_bookings"
    COMPLETED = "completed"
    ERROR = "error"


class RunType(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


# ==== Schemas ====

class CheckedOutBooking(BaseModel):
    booking_id: int
    resource_id: int
    resource_name: str
    guest_name: str
    check_in: datetime
    check_out: datetime
    duration_minutes: int
    billed_hours: int
    hourly_rate: Decimal
    amount: Decimal


class FailedBooking(BaseModel):
    booking_id: Optional[int] = None
    resource_name: Optional[str] = None
    guest_name: Optional[str] = None
    error: str


class RunDetails(BaseModel):
    successful: list[CheckedOutBooking] = Field(default_factory=list)
    failed: list[FailedBooking] = Field(default_factory=list)
    skipped: list[int] = Field(default_factory=list)


class AutoCheckoutResult(BaseModel):
    status: RunStatus
    message: Optional[str] = None
    checked_out: int = 0
    failed: int = 0
    skipped: int = 0
    total_processed: int = 0
    details: Optional[RunDetails] = None
    run_type: RunType
    timestamp: str

    class Config:
        use_enum_values = True


class PeriodStats(BaseModel):
    count: int = 0
    amount: Decimal = Decimal("0")


class CheckoutStats(BaseModel):
    today: PeriodStats = Field(default_factory=PeriodStats)
    week: PeriodStats = Field(default_factory=PeriodStats)


# ==== Builders ====

def _run_type(manual: bool) -> RunType:
    return RunType.MANUAL if manual else RunType.AUTOMATIC


def build_skipped_result(status: RunStatus, message: str, manual: bool, now: datetime) -> AutoCheckoutResult:
    """Result for a run that stopped before or without touching any booking."""
    return AutoCheckoutResult(
        status=status,
        message=message,
        run_type=_run_type(manual),
        timestamp=now.strftime(TIMESTAMP_FORMAT),
    )


def build_completed_result(details: RunDetails, manual: bool, now: datetime) -> AutoCheckoutResult:
    checked_out = len(details.successful)
    failed = len(details.failed)
    skipped = len(details.skipped)
    return AutoCheckoutResult(
        status=RunStatus.COMPLETED,
        message=f"Checked out {checked_out} booking(s), {failed} failed",
        checked_out=checked_out,
        failed=failed,
        skipped=skipped,
        total_processed=checked_out + failed + skipped,
        details=details,
        run_type=_run_type(manual),
        timestamp=now.strftime(TIMESTAMP_FORMAT),
    )


def generate_log_csv(entries: list[AutoCheckoutLog]) -> str:
    """Generates a CSV export of auto checkout audit entries."""
    output = StringIO()
    writer = csv.writer(output)

    # Header
    writer.writerow(["Log ID", "Booking ID", "Resource", "Guest", "Date", "Time", "Status", "Notes"])

    # Data
    for e in entries:
        writer.writerow([
            e.id,
            e.booking_id if e.booking_id is not None else "",
            e.resource_name or "",
            e.guest_name or "",
            e.checkout_date.isoformat(),
            e.checkout_time.strftime("%H:%M:%S"),
            e.status.value,
            e.notes or "",
        ])

    return output.getvalue()
