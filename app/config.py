import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    APP_NAME: str = "LPST Auto Checkout"
    # Core settings
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development").lower()
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./autocheckout.db")

    # All local dates and times are computed in this zone
    TIMEZONE: str = os.getenv("TIMEZONE", "Asia/Kolkata")

    # Shared secret for the run/status endpoints (empty disables the check)
    AUTO_CHECKOUT_API_TOKEN: str = os.getenv("AUTO_CHECKOUT_API_TOKEN", "")

    # SMS gateway
    SMS_API_URL: str = os.getenv("SMS_API_URL", "")
    SMS_API_KEY: str = os.getenv("SMS_API_KEY", "")
    SMS_SENDER: str = os.getenv("SMS_SENDER", "LPSTHB")
    SMS_TIMEOUT_SECONDS: int = int(os.getenv("SMS_TIMEOUT_SECONDS", "10"))

settings = Settings()
