import logging
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, and_
from sqlalchemy.orm import Session

from ..models import AutoCheckoutLog, CheckoutOutcome, Payment, SystemSetting, AUTO_CHECKOUT_METHOD
from .reporting import CheckoutStats, PeriodStats
from .run_settings import LAST_RUN_KEY, LAST_RUN_FORMAT

logger = logging.getLogger(__name__)

STATS_WINDOW_DAYS = 7


def record_last_run(db: Session, now: datetime) -> bool:
    """
    Stores `now` (local time) as the last successful automatic run.
    A failed write is logged and reported as False; the run result stands.
    """
    value = now.strftime(LAST_RUN_FORMAT)
    try:
        row = db.get(SystemSetting, LAST_RUN_KEY)
        if row is None:
            db.add(SystemSetting(setting_key=LAST_RUN_KEY, setting_value=value))
        else:
            row.setting_value = value
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error("Failed to update last auto checkout run time: %s", e)
        return False
    logger.info("Recorded last auto checkout run at %s", value)
    return True


def _period_stats(db: Session, since: date, until: date | None = None) -> PeriodStats:
    conditions = [AutoCheckoutLog.status == CheckoutOutcome.SUCCESS, AutoCheckoutLog.checkout_date >= since]
    if until is not None:
        conditions.append(AutoCheckoutLog.checkout_date <= until)
    count, total = (
        db.query(func.count(AutoCheckoutLog.id), func.coalesce(func.sum(Payment.amount), 0))
        .select_from(AutoCheckoutLog)
        .outerjoin(
            Payment,
            and_(Payment.booking_id == AutoCheckoutLog.booking_id, Payment.payment_method == AUTO_CHECKOUT_METHOD),
        )
        .filter(*conditions)
        .one()
    )
    return PeriodStats(count=count or 0, amount=Decimal(str(total or 0)))


def get_checkout_stats(db: Session, today: date) -> CheckoutStats:
    """Successful automatic checkouts and their billed amounts for today and the trailing week."""
    try:
        return CheckoutStats(
            today=_period_stats(db, today, today),
            week=_period_stats(db, today - timedelta(days=STATS_WINDOW_DAYS)),
        )
    except Exception as e:
        db.rollback()
        logger.error("Failed to compute auto checkout stats: %s", e)
        return CheckoutStats()
