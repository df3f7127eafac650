import secrets
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, Response
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models import ACTIVE_STATUSES, AutoCheckoutLog, Booking, CheckoutOutcome
from ..services.auto_checkout import local_now, run_auto_checkout
from ..services.reporting import AutoCheckoutResult, CheckoutStats, RunStatus, generate_log_csv
from ..services.run_ledger import get_checkout_stats
from ..services.run_settings import LAST_RUN_FORMAT, load_run_settings
from ..services.sms import send_checkout_sms

router = APIRouter(prefix="/api/v1/auto-checkout", tags=["auto-checkout"])

# ==== Schemas ====

class StatusOut(BaseModel):
    enabled: bool
    time: str
    grace_minutes: int
    last_run: Optional[str] = None
    active_bookings: int
    today_checkouts: int
    current_time: str
    next_run: str
    timezone: str
    stats: CheckoutStats

# ==== Helpers ====

def require_token(x_auth_token: Optional[str] = Header(None)) -> None:
    expected = settings.AUTO_CHECKOUT_API_TOKEN
    if not expected:
        return
    if not x_auth_token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if not secrets.compare_digest(x_auth_token, expected):
        raise HTTPException(status_code=403, detail="Forbidden")

# ==== Endpoints ====

@router.post("/run", response_model=AutoCheckoutResult, dependencies=[Depends(require_token)])
def trigger_run(background_tasks: BackgroundTasks, response: Response, manual: bool = Query(False), db: Session = Depends(get_db)):
    # SMS goes out after the response, well after every booking has committed
    result = run_auto_checkout(db, manual=manual, notify=lambda booking_id: background_tasks.add_task(send_checkout_sms, booking_id))
    if result.status == RunStatus.ERROR:
        response.status_code = 500
    return result


@router.get("/status", response_model=StatusOut, dependencies=[Depends(require_token)])
def checkout_status(db: Session = Depends(get_db)):
    run_settings = load_run_settings(db)
    now = local_now(run_settings.timezone)
    active = db.query(func.count(Booking.id)).filter(Booking.status.in_(ACTIVE_STATUSES)).scalar() or 0
    today_checkouts = (
        db.query(func.count(AutoCheckoutLog.id))
        .filter(AutoCheckoutLog.checkout_date == now.date(), AutoCheckoutLog.status == CheckoutOutcome.SUCCESS)
        .scalar()
        or 0
    )
    scheduled = run_settings.checkout_time.strftime("%H:%M")
    if not run_settings.enabled:
        next_run = "Disabled"
    elif run_settings.last_run is not None and run_settings.last_run.date() == now.date():
        next_run = f"Tomorrow at {scheduled}"
    elif now.time() <= run_settings.checkout_time:
        next_run = f"Today at {scheduled}"
    else:
        next_run = f"Today at {scheduled} (+/- {run_settings.grace_minutes} min) or tomorrow"
    return StatusOut(
        enabled=run_settings.enabled,
        time=scheduled,
        grace_minutes=run_settings.grace_minutes,
        last_run=run_settings.last_run.strftime(LAST_RUN_FORMAT) if run_settings.last_run else None,
        active_bookings=active,
        today_checkouts=today_checkouts,
        current_time=now.strftime("%H:%M"),
        next_run=next_run,
        timezone=str(run_settings.timezone),
        stats=get_checkout_stats(db, now.date()),
    )


@router.get("/logs.csv", dependencies=[Depends(require_token)])
def export_logs(limit: int = Query(500, ge=1, le=5000), db: Session = Depends(get_db)):
    entries = db.query(AutoCheckoutLog).order_by(AutoCheckoutLog.id.desc()).limit(limit).all()
    return Response(
        content=generate_log_csv(entries),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=auto_checkout_logs.csv"},
    )
