import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from .config import settings

logger = logging.getLogger(__name__)

class Base(DeclarativeBase):
    pass

engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {},
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_schema(bind=None):
    """
    Lightweight, best-effort schema setup for environments without Alembic.
    - Create missing tables
    - Ensure indexes used by the checkout sweep and its reporting queries exist
    Never fails app startup; best-effort only.
    """
    from . import models  # noqa: F401  (register mappers)

    bind = bind or engine
    try:
        Base.metadata.create_all(bind=bind)
        with bind.connect() as conn:
            # IF NOT EXISTS is supported by SQLite and PG 9.5+
            for idx in [
                "CREATE INDEX IF NOT EXISTS ix_bookings_status_processed ON bookings(status, auto_checkout_processed);",
                "CREATE INDEX IF NOT EXISTS ix_auto_checkout_logs_date_status ON auto_checkout_logs(checkout_date, status);",
                "CREATE INDEX IF NOT EXISTS ix_payments_booking_method ON payments(booking_id, payment_method);",
            ]:
                try:
                    conn.exec_driver_sql(idx)
                    conn.commit()
                except Exception as e:
                    conn.rollback()
                    logger.warning("Skipping index creation (%s): %s", idx, e)
    except Exception:
        # Never fail app startup due to best-effort schema setup
        logger.exception("Best-effort schema setup failed")
