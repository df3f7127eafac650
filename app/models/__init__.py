from .resource import Resource, ResourceType
from .booking import Booking, BookingStatus, ACTIVE_STATUSES
from .payment import Payment, AUTO_CHECKOUT_METHOD
from .checkout_log import AutoCheckoutLog, CheckoutOutcome
from .system_setting import SystemSetting
