import logging
import requests
from ..config import settings
from ..db import SessionLocal
from ..models import Booking
from .auto_checkout import billed_hours

logger = logging.getLogger(__name__)


def build_checkout_message(booking: Booking) -> str:
    resource = booking.resource.name if booking.resource else f"#{booking.resource_id}"
    hours = billed_hours(booking.duration_minutes or 0)
    return (
        f"Dear {booking.client_name}, you have been checked out of {resource}. "
        f"Duration: {hours}h. Amount: Rs.{booking.total_amount}. Thank you for staying with us."
    )


def send_checkout_sms(booking_id: int, session_factory=SessionLocal) -> bool:
    """Sends a checkout confirmation SMS to the booking's guest via the configured gateway."""
    if not settings.SMS_API_URL or not settings.SMS_API_KEY:
        logger.warning("SMS gateway not configured. Skipping checkout SMS for booking %s.", booking_id)
        return False

    db = session_factory()
    try:
        booking = db.get(Booking, booking_id)
        if booking is None:
            logger.warning("Booking %s not found. Skipping checkout SMS.", booking_id)
            return False
        if not booking.client_mobile:
            logger.info("Booking %s has no guest mobile number. Skipping checkout SMS.", booking_id)
            return False
        data = {
            "apikey": settings.SMS_API_KEY,
            "sender": settings.SMS_SENDER,
            "numbers": booking.client_mobile,
            "message": build_checkout_message(booking),
        }
    finally:
        db.close()

    try:
        response = requests.post(settings.SMS_API_URL, data=data, timeout=settings.SMS_TIMEOUT_SECONDS)
        response.raise_for_status()  # Raise an exception for bad status codes (4xx or 5xx)
        logger.info(f"Checkout SMS sent for booking {booking_id}.")
        return True
    except requests.exceptions.RequestException as e:
        logger.error(f"Failed to send checkout SMS for booking {booking_id}: {e}")
        return False
