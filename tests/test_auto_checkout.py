from dataclasses import replace
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from app.models import (
    AutoCheckoutLog,
    Booking,
    BookingStatus,
    CheckoutOutcome,
    Payment,
    ResourceType,
    SystemSetting,
    AUTO_CHECKOUT_METHOD,
)
from app.services import auto_checkout
from app.services.auto_checkout import process_bookings, run_auto_checkout, select_due_for_checkout
from app.services.run_settings import LAST_RUN_KEY

NOW = datetime(2026, 10, 19, 10, 15)
TODAY = NOW.date()


def last_run(db):
    db.expire_all()
    row = db.get(SystemSetting, LAST_RUN_KEY)
    return row.setting_value if row else None


def count(db, model):
    return db.query(model).count()


@pytest.fixture
def schedule(put_settings):
    put_settings(auto_checkout_enabled="1", auto_checkout_time="10:00", auto_checkout_grace_minutes="30")


# ==== Eligibility ====

class TestSelectDueForCheckout:
    def test_orders_by_scheduled_check_in(self, db, make_booking):
        late = make_booking(datetime(2026, 10, 18, 15, 0), guest="Late")
        early = make_booking(datetime(2026, 10, 18, 9, 0), guest="Early")
        pending = make_booking(datetime(2026, 10, 18, 12, 0), status=BookingStatus.PENDING, guest="Pending")
        due = select_due_for_checkout(db, TODAY)
        assert [b.id for b in due] == [early.id, pending.id, late.id]

    def test_excludes_completed_and_processed(self, db, make_booking):
        make_booking(datetime(2026, 10, 18, 9, 0), status=BookingStatus.COMPLETED)
        make_booking(datetime(2026, 10, 18, 9, 0), processed=True)
        active = make_booking(datetime(2026, 10, 18, 9, 0))
        assert [b.id for b in select_due_for_checkout(db, TODAY)] == [active.id]

    def test_excludes_booking_with_success_logged_today(self, db, make_booking):
        logged = make_booking(datetime(2026, 10, 18, 9, 0))
        failed_today = make_booking(datetime(2026, 10, 18, 10, 0))
        logged_yesterday = make_booking(datetime(2026, 10, 18, 11, 0))
        db.add_all([
            AutoCheckoutLog(booking_id=logged.id, checkout_date=TODAY, checkout_time=NOW.time(), status=CheckoutOutcome.SUCCESS),
            AutoCheckoutLog(booking_id=failed_today.id, checkout_date=TODAY, checkout_time=NOW.time(), status=CheckoutOutcome.FAILED, notes="Error: x"),
            AutoCheckoutLog(booking_id=logged_yesterday.id, checkout_date=TODAY - timedelta(days=1), checkout_time=NOW.time(), status=CheckoutOutcome.SUCCESS),
        ])
        db.commit()
        assert [b.id for b in select_due_for_checkout(db, TODAY)] == [failed_today.id, logged_yesterday.id]


# ==== Full runs ====

def test_scheduled_run_checks_out_every_eligible_booking(db, schedule, make_booking, make_resource):
    hall = make_resource("Hall A", ResourceType.HALL, custom_name="Wedding Hall")
    room_booking = make_booking(datetime(2026, 10, 18, 10, 15), guest="Asha")
    hall_booking = make_booking(datetime(2026, 10, 19, 8, 40), resource=hall, guest="Ravi")

    result = run_auto_checkout(db, manual=False, now=NOW)

    assert result.status == "completed"
    assert result.run_type == "automatic"
    assert result.checked_out == 2
    assert result.failed == 0
    assert result.total_processed == 2
    assert result.timestamp == "2026-10-19 10:15:00"
    assert last_run(db) == "2026-10-19 10:15:00"

    db.expire_all()
    room = db.get(Booking, room_booking.id)
    assert room.status == BookingStatus.COMPLETED
    assert room.auto_checkout_processed is True
    assert room.actual_check_out == NOW
    assert room.duration_minutes == 24 * 60
    assert room.total_amount == Decimal("2400")

    hall_row = db.get(Booking, hall_booking.id)
    assert hall_row.duration_minutes == 95
    assert hall_row.total_amount == Decimal("1000")

    payments = db.query(Payment).order_by(Payment.booking_id).all()
    assert [(p.booking_id, p.amount, p.payment_method) for p in payments] == [
        (room_booking.id, Decimal("2400"), AUTO_CHECKOUT_METHOD),
        (hall_booking.id, Decimal("1000"), AUTO_CHECKOUT_METHOD),
    ]
    assert "Duration: 2h" in payments[1].payment_notes
    assert "500" in payments[1].payment_notes

    logs = db.query(AutoCheckoutLog).order_by(AutoCheckoutLog.booking_id).all()
    assert [l.status for l in logs] == [CheckoutOutcome.SUCCESS, CheckoutOutcome.SUCCESS]
    assert logs[1].resource_name == "Wedding Hall"
    assert logs[1].guest_name == "Ravi"
    assert logs[1].checkout_date == TODAY


def test_actual_check_in_takes_precedence(db, schedule, make_booking):
    booking = make_booking(datetime(2026, 10, 18, 8, 0), actual_check_in=datetime(2026, 10, 19, 9, 0))
    run_auto_checkout(db, manual=True, now=NOW)
    db.expire_all()
    row = db.get(Booking, booking.id)
    assert row.duration_minutes == 75
    assert row.total_amount == Decimal("200")


def test_outside_window_touches_nothing(db, schedule, make_booking):
    booking = make_booking(datetime(2026, 10, 18, 10, 0))
    result = run_auto_checkout(db, manual=False, now=NOW.replace(hour=9, minute=0))
    assert result.status == "not_time"
    assert last_run(db) is None
    assert count(db, Payment) == 0
    assert count(db, AutoCheckoutLog) == 0
    db.expire_all()
    assert db.get(Booking, booking.id).status == BookingStatus.BOOKED


def test_disabled_touches_nothing(db, put_settings, make_booking):
    put_settings(auto_checkout_enabled="0")
    booking = make_booking(datetime(2026, 10, 18, 10, 0))
    for manual in (False, True):
        result = run_auto_checkout(db, manual=manual, now=NOW)
        assert result.status == "disabled"
    assert last_run(db) is None
    assert count(db, Payment) == 0
    db.expire_all()
    assert db.get(Booking, booking.id).auto_checkout_processed is False


def test_second_scheduled_run_same_day_is_already_run(db, schedule, make_booking):
    make_booking(datetime(2026, 10, 18, 10, 0))
    assert run_auto_checkout(db, now=NOW).status == "completed"
    make_booking(datetime(2026, 10, 19, 10, 0))
    second = run_auto_checkout(db, now=NOW + timedelta(minutes=5))
    assert second.status == "already_run"
    assert count(db, Payment) == 1


def test_repeated_manual_runs_never_double_bill(db, schedule, make_booking):
    make_booking(datetime(2026, 10, 18, 10, 0))
    assert run_auto_checkout(db, manual=True, now=NOW).checked_out == 1
    second = run_auto_checkout(db, manual=True, now=NOW + timedelta(minutes=1))
    assert second.status == "no_bookings"
    assert count(db, Payment) == 1
    assert count(db, AutoCheckoutLog) == 1


def test_manual_run_bypasses_gates_without_touching_ledger(db, put_settings, make_booking):
    put_settings(auto_checkout_time="10:00", last_auto_checkout_run="2026-10-19 10:05:00")
    make_booking(datetime(2026, 10, 18, 10, 0))
    result = run_auto_checkout(db, manual=True, now=NOW.replace(hour=22))
    assert result.status == "completed"
    assert result.run_type == "manual"
    assert last_run(db) == "2026-10-19 10:05:00"


def test_empty_scheduled_run_records_ledger(db, schedule):
    result = run_auto_checkout(db, now=NOW)
    assert result.status == "no_bookings"
    assert result.checked_out == 0
    assert last_run(db) == "2026-10-19 10:15:00"


def test_failed_booking_is_isolated(db, schedule, make_booking):
    ok_before = make_booking(datetime(2026, 10, 18, 8, 0))
    broken = Booking(resource_id=999, client_name="Ghost", status=BookingStatus.BOOKED, check_in=datetime(2026, 10, 18, 9, 0))
    db.add(broken)
    db.commit()
    ok_after = make_booking(datetime(2026, 10, 18, 10, 0))

    result = run_auto_checkout(db, now=NOW)

    assert result.status == "completed"
    assert result.checked_out == 2
    assert result.failed == 1
    assert result.total_processed == 3
    assert result.details.failed[0].booking_id == broken.id
    assert "999" in result.details.failed[0].error

    db.expire_all()
    row = db.get(Booking, broken.id)
    assert row.status == BookingStatus.BOOKED
    assert row.auto_checkout_processed is False
    assert row.total_amount is None
    for b in (ok_before, ok_after):
        assert db.get(Booking, b.id).status == BookingStatus.COMPLETED

    failures = db.query(AutoCheckoutLog).filter(AutoCheckoutLog.status == CheckoutOutcome.FAILED).all()
    assert len(failures) == 1
    assert failures[0].booking_id == broken.id
    assert failures[0].notes.startswith("Error: ")
    assert count(db, Payment) == 2


def test_failure_after_booking_update_rolls_it_back(db, schedule, make_booking, monkeypatch):
    booking = make_booking(datetime(2026, 10, 18, 8, 0))

    def boom(**kwargs):
        raise RuntimeError("payments table locked")

    monkeypatch.setattr(auto_checkout, "Payment", boom)
    result = run_auto_checkout(db, now=NOW)

    assert result.failed == 1
    assert result.details.failed[0].error == "payments table locked"
    db.expire_all()
    row = db.get(Booking, booking.id)
    assert row.status == BookingStatus.BOOKED
    assert row.auto_checkout_processed is False
    assert row.duration_minutes is None
    assert count(db, Payment) == 0
    notes = [l.notes for l in db.query(AutoCheckoutLog).all()]
    assert notes == ["Error: payments table locked"]


def test_booking_claimed_elsewhere_is_skipped(db, run_settings, make_booking):
    booking = make_booking(datetime(2026, 10, 18, 8, 0))
    due = select_due_for_checkout(db, TODAY)
    # Another invocation completes it between selection and checkout
    db.query(Booking).filter(Booking.id == booking.id).update({Booking.auto_checkout_processed: True})
    db.commit()

    details = process_bookings(db, due, run_settings, NOW)

    assert details.skipped == [booking.id]
    assert details.successful == []
    assert details.failed == []
    assert count(db, Payment) == 0
    assert count(db, AutoCheckoutLog) == 0


def test_notifier_runs_once_every_checkout_has_committed(db, session_factory, schedule, make_booking):
    first = make_booking(datetime(2026, 10, 18, 8, 0))
    second = make_booking(datetime(2026, 10, 18, 9, 0))
    ids = (first.id, second.id)
    seen = []

    def notify(booking_id):
        # Read through a separate session so only committed state is visible
        other = session_factory()
        try:
            statuses = [other.get(Booking, b).status for b in ids]
            marker = other.get(SystemSetting, LAST_RUN_KEY)
            seen.append((booking_id, statuses, marker.setting_value if marker else None))
        finally:
            other.close()
        raise ConnectionError("sms gateway down")

    result = run_auto_checkout(db, now=NOW, notify=notify)

    assert result.checked_out == 2
    assert result.failed == 0
    done = [BookingStatus.COMPLETED, BookingStatus.COMPLETED]
    assert seen == [
        (ids[0], done, "2026-10-19 10:15:00"),
        (ids[1], done, "2026-10-19 10:15:00"),
    ]


def test_booking_deleted_mid_run_is_audited_as_failure(db, session_factory, run_settings, make_booking):
    kept = make_booking(datetime(2026, 10, 18, 8, 0), guest="Kept")
    gone = make_booking(datetime(2026, 10, 18, 9, 0), guest="Gone")
    gone_id = gone.id
    due = select_due_for_checkout(db, TODAY)

    other = session_factory()
    try:
        other.query(Booking).filter(Booking.id == gone_id).delete()
        other.commit()
    finally:
        other.close()

    details = process_bookings(db, due, run_settings, NOW)

    assert [b.booking_id for b in details.successful] == [kept.id]
    assert len(details.failed) == 1
    assert details.failed[0].booking_id == gone_id
    assert details.failed[0].guest_name == "Gone"
    failures = db.query(AutoCheckoutLog).filter(AutoCheckoutLog.status == CheckoutOutcome.FAILED).all()
    assert [(f.booking_id, f.guest_name) for f in failures] == [(gone_id, "Gone")]
    assert failures[0].notes.startswith("Error: ")


def test_ledger_records_completion_instant(db, schedule, make_booking):
    make_booking(datetime(2026, 10, 18, 8, 0))
    readings = iter([NOW, NOW + timedelta(minutes=3, seconds=20)])

    result = run_auto_checkout(db, clock=lambda: next(readings))

    assert result.status == "completed"
    assert result.timestamp == "2026-10-19 10:15:00"
    assert last_run(db) == "2026-10-19 10:18:20"


def test_unknown_timezone_reports_error(db, make_booking, monkeypatch):
    from app.config import settings

    make_booking(datetime(2026, 10, 18, 8, 0))
    monkeypatch.setattr(settings, "TIMEZONE", "Mars/Olympus_Mons")

    result = run_auto_checkout(db)

    assert result.status == "error"
    assert "Mars/Olympus_Mons" in result.message
    assert count(db, Payment) == 0


def test_selection_failure_reports_error_without_ledger(db, schedule, make_booking, monkeypatch):
    make_booking(datetime(2026, 10, 18, 8, 0))

    def broken_query(db, today):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(auto_checkout, "select_due_for_checkout", broken_query)
    result = run_auto_checkout(db, now=NOW)

    assert result.status == "error"
    assert "database is locked" in result.message
    assert last_run(db) is None


def test_aware_now_is_converted_to_local_time(db, schedule, make_booking):
    from zoneinfo import ZoneInfo

    make_booking(datetime(2026, 10, 18, 8, 0))
    # 04:45 UTC is 10:15 in Asia/Kolkata
    result = run_auto_checkout(db, now=datetime(2026, 10, 19, 4, 45, tzinfo=ZoneInfo("UTC")))
    assert result.status == "completed"
    assert result.timestamp == "2026-10-19 10:15:00"


def test_explicit_run_settings_are_used_as_is(db, run_settings, put_settings, make_booking):
    put_settings(auto_checkout_enabled="0")
    make_booking(datetime(2026, 10, 19, 9, 15))
    result = run_auto_checkout(db, now=NOW, run_settings=replace(run_settings, room_rate=Decimal("80")))
    assert result.status == "completed"
    assert result.details.successful[0].amount == Decimal("80")
