"""
Daily automatic checkout.

An external scheduler calls :func:`run_auto_checkout` every few minutes. The
run gates itself to a single firing per day around the configured time,
then closes every still-active booking: it bills the stay by the hour,
marks the booking COMPLETED, records a payment and an audit entry. Each
booking is its own unit of work, so one failure never blocks the rest.
"""
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import and_, exists, inspect
from sqlalchemy.orm import Session, joinedload

from ..models import (
    ACTIVE_STATUSES,
    AUTO_CHECKOUT_METHOD,
    AutoCheckoutLog,
    Booking,
    BookingStatus,
    CheckoutOutcome,
    Payment,
    ResourceType,
)
from .reporting import (
    AutoCheckoutResult,
    CheckedOutBooking,
    FailedBooking,
    RunDetails,
    RunStatus,
    build_completed_result,
    build_skipped_result,
)
from .run_ledger import record_last_run
from .run_settings import RunSettings, get_timezone, load_run_settings
from .trigger_policy import TriggerDecision, evaluate_trigger

logger = logging.getLogger(__name__)

# Receives the id of a booking whose checkout has committed
Notifier = Callable[[int], object]
Clock = Callable[[], datetime]

_SKIP_STATUSES = {
    TriggerDecision.DISABLED: RunStatus.DISABLED,
    TriggerDecision.NOT_TIME: RunStatus.NOT_TIME,
    TriggerDecision.ALREADY_RUN: RunStatus.ALREADY_RUN,
}


class CheckoutConflict(Exception):
    """The booking was completed or claimed by another invocation first."""


@dataclass(frozen=True)
class Billing:
    duration_minutes: int
    billed_hours: int
    hourly_rate: Decimal
    amount: Decimal


@dataclass(frozen=True)
class _BookingSnapshot:
    booking_id: Optional[int]
    resource_id: Optional[int]
    resource_name: Optional[str]
    guest_name: Optional[str]


def local_now(tz=None, now: datetime | None = None) -> datetime:
    """Naive wall-clock time in `tz`; aware inputs are converted, naive ones taken as local."""
    tz = tz or get_timezone()
    if now is None:
        now = datetime.now(tz)
    elif now.tzinfo is not None:
        now = now.astimezone(tz)
    return now.replace(tzinfo=None)


# ==== Billing ====

def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end; clock skew never yields a negative duration."""
    return max(0, int((end - start).total_seconds() // 60))


def billed_hours(minutes: int) -> int:
    # Any partial hour bills as a full hour, with a one hour minimum
    return max(1, math.ceil(minutes / 60))


def hourly_rate_for(resource_type: ResourceType | str, run_settings: RunSettings) -> Decimal:
    if ResourceType(resource_type) is ResourceType.HALL:
        return run_settings.hall_rate
    return run_settings.room_rate


def compute_billing(start: datetime, end: datetime, resource_type, run_settings: RunSettings) -> Billing:
    minutes = elapsed_minutes(start, end)
    hours = billed_hours(minutes)
    rate = hourly_rate_for(resource_type, run_settings)
    return Billing(duration_minutes=minutes, billed_hours=hours, hourly_rate=rate, amount=rate * hours)


# ==== Eligibility ====

def select_due_for_checkout(db: Session, today: date) -> list[Booking]:
    """
    Active, unprocessed bookings that have no successful checkout logged today,
    earliest scheduled check-in first.
    """
    logged_today = exists().where(
        and_(
            AutoCheckoutLog.booking_id == Booking.id,
            AutoCheckoutLog.status == CheckoutOutcome.SUCCESS,
            AutoCheckoutLog.checkout_date == today,
        )
    )
    return (
        db.query(Booking)
        .options(joinedload(Booking.resource))
        .filter(
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.auto_checkout_processed.is_(False),
            ~logged_today,
        )
        .order_by(Booking.check_in.asc(), Booking.id.asc())
        .all()
    )


# ==== Per-booking unit of work ====

def _snapshot(booking: Booking) -> _BookingSnapshot:
    resource = booking.resource
    return _BookingSnapshot(
        booking_id=booking.id,
        resource_id=booking.resource_id,
        resource_name=resource.name if resource is not None else None,
        guest_name=booking.client_name,
    )


def checkout_booking(db: Session, booking: Booking, run_settings: RunSettings, now: datetime) -> CheckedOutBooking:
    """
    Completes one booking atomically: booking update, payment and success
    audit entry are committed together or not at all. `now` is naive local
    time. Raises after rolling back on any failure.
    """
    try:
        snap = _snapshot(booking)
        if booking.resource is None:
            raise LookupError(f"Resource {booking.resource_id} not found")
        start = booking.session_start
        billing = compute_billing(start, now, booking.resource.type, run_settings)

        # Conditional update doubles as the claim against concurrent runs
        updated = (
            db.query(Booking)
            .filter(
                Booking.id == snap.booking_id,
                Booking.auto_checkout_processed.is_(False),
                Booking.status.in_(ACTIVE_STATUSES),
            )
            .update(
                {
                    Booking.status: BookingStatus.COMPLETED,
                    Booking.actual_check_out: now,
                    Booking.actual_checkout_date: now.date(),
                    Booking.actual_checkout_time: now.time().replace(microsecond=0),
                    Booking.duration_minutes: billing.duration_minutes,
                    Booking.total_amount: billing.amount,
                    Booking.auto_checkout_processed: True,
                },
                synchronize_session=False,
            )
        )
        if updated != 1:
            raise CheckoutConflict(f"Booking {snap.booking_id} was already checked out")

        checkout_ts = now.strftime("%Y-%m-%d %H:%M:%S")
        db.add(
            Payment(
                booking_id=snap.booking_id,
                resource_id=snap.resource_id,
                amount=billing.amount,
                payment_method=AUTO_CHECKOUT_METHOD,
                payment_status="COMPLETED",
                payment_notes=(
                    f"Auto checkout at {checkout_ts} - Duration: {billing.billed_hours}h "
                    f"({billing.duration_minutes} min) - Rate: ₹{billing.hourly_rate}/hour"
                ),
            )
        )
        db.add(
            AutoCheckoutLog(
                booking_id=snap.booking_id,
                resource_id=snap.resource_id,
                resource_name=snap.resource_name,
                guest_name=snap.guest_name,
                checkout_date=now.date(),
                checkout_time=now.time().replace(microsecond=0),
                status=CheckoutOutcome.SUCCESS,
                notes=f"Automatic checkout - Duration: {billing.billed_hours}h - Amount: ₹{billing.amount}",
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Checked out booking %s (%s): %sh at %s/h = %s",
        snap.booking_id, snap.resource_name, billing.billed_hours, billing.hourly_rate, billing.amount,
    )
    return CheckedOutBooking(
        booking_id=snap.booking_id,
        resource_id=snap.resource_id,
        resource_name=snap.resource_name or "",
        guest_name=snap.guest_name or "",
        check_in=start,
        check_out=now,
        duration_minutes=billing.duration_minutes,
        billed_hours=billing.billed_hours,
        hourly_rate=billing.hourly_rate,
        amount=billing.amount,
    )


def record_failure(db: Session, snap: _BookingSnapshot, now: datetime, error: str) -> None:
    """Writes the failure audit entry in its own transaction; never raises."""
    try:
        db.add(
            AutoCheckoutLog(
                booking_id=snap.booking_id,
                resource_id=snap.resource_id,
                resource_name=snap.resource_name,
                guest_name=snap.guest_name,
                checkout_date=now.date(),
                checkout_time=now.time().replace(microsecond=0),
                status=CheckoutOutcome.FAILED,
                notes=f"Error: {error}",
            )
        )
        db.commit()
    except Exception as log_error:
        db.rollback()
        logger.error("Failed to log auto checkout error for booking %s: %s", snap.booking_id, log_error)


def dispatch_notification(notify: Optional[Notifier], booking_id: int) -> None:
    """Hands a committed checkout to the notifier. Its failures never reach the caller."""
    if notify is None:
        return
    try:
        if notify(booking_id) is False:
            logger.warning("Checkout notification for booking %s was not delivered", booking_id)
    except Exception:
        logger.exception("Checkout notification failed for booking %s", booking_id)


def _error_text(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


# ==== Run ====

def _identity_id(booking: Booking) -> Optional[int]:
    # The identity key survives expiry, unlike the loaded attributes
    identity = inspect(booking).identity
    return identity[0] if identity else None


def _fail(db: Session, details: RunDetails, snap: _BookingSnapshot, now: datetime, error: str) -> None:
    logger.error("Auto checkout failed for booking %s: %s", snap.booking_id, error)
    record_failure(db, snap, now, error)
    details.failed.append(
        FailedBooking(
            booking_id=snap.booking_id,
            resource_name=snap.resource_name,
            guest_name=snap.guest_name,
            error=error,
        )
    )


def process_bookings(db: Session, bookings: list[Booking], run_settings: RunSettings, now: datetime) -> RunDetails:
    """
    Checks out each selected booking in its own transaction. Every booking is
    snapshotted before the first commit expires the session, so each attempt
    can be audited even when its row changes underneath the run.
    """
    details = RunDetails()
    staged: list[tuple[Booking, _BookingSnapshot]] = []
    unreadable: list[tuple[_BookingSnapshot, str]] = []
    for booking in bookings:
        try:
            staged.append((booking, _snapshot(booking)))
        except Exception as e:
            unreadable.append((_BookingSnapshot(_identity_id(booking), None, None, None), _error_text(e)))

    if unreadable:
        db.rollback()
    for snap, error in unreadable:
        _fail(db, details, snap, now, error)

    for booking, snap in staged:
        try:
            checked_out = checkout_booking(db, booking, run_settings, now)
        except CheckoutConflict as e:
            logger.warning("%s; skipping", e)
            details.skipped.append(snap.booking_id)
            continue
        except Exception as e:
            _fail(db, details, snap, now, _error_text(e))
            continue
        details.successful.append(checked_out)
    return details


def run_auto_checkout(
    db: Session,
    manual: bool = False,
    now: datetime | None = None,
    notify: Optional[Notifier] = None,
    run_settings: RunSettings | None = None,
    clock: Optional[Clock] = None,
) -> AutoCheckoutResult:
    """
    One invocation of the checkout job. Manual runs bypass the schedule gates
    and never move the last-run marker, so they cannot suppress the day's
    automatic run. Never raises; failures are reported in the result.

    The clock is read at the start of the run and again at completion for
    the last-run marker. `now` pins both readings.

    Notifications are sent only once every booking transaction has committed
    and the last-run marker is written.
    """
    if clock is None and now is not None:
        def clock():
            return now
    current = None
    try:
        run_settings = run_settings or load_run_settings(db)
        tz = run_settings.timezone
        current = local_now(tz, clock() if clock else None)

        trigger = evaluate_trigger(current, manual, run_settings)
        if not trigger.proceed:
            logger.info("Auto checkout not run: %s", trigger.message)
            return build_skipped_result(_SKIP_STATUSES[trigger.decision], trigger.message, manual, current)

        logger.info("Auto checkout started (%s)", "manual" if manual else "automatic")
        bookings = select_due_for_checkout(db, current.date())
        if not bookings:
            if not manual:
                record_last_run(db, local_now(tz, clock() if clock else None))
            return build_skipped_result(
                RunStatus.NO_BOOKINGS, "No active bookings found for checkout", manual, current
            )

        details = process_bookings(db, bookings, run_settings, current)
        if not manual:
            record_last_run(db, local_now(tz, clock() if clock else None))
    except Exception as e:
        db.rollback()
        logger.exception("Auto checkout error")
        if current is None:
            current = datetime.now(timezone.utc).replace(tzinfo=None)
        return build_skipped_result(RunStatus.ERROR, _error_text(e), manual, current)

    for checked_out in details.successful:
        dispatch_notification(notify, checked_out.booking_id)

    result = build_completed_result(details, manual, current)
    logger.info(
        "Auto checkout completed: %s checked out, %s failed, %s skipped",
        result.checked_out, result.failed, result.skipped,
    )
    return result
