import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TIMEZONE", "Asia/Kolkata")

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import Base
from app.models import Booking, BookingStatus, Resource, ResourceType, SystemSetting
from app.services.run_settings import RunSettings, get_timezone

TZ = get_timezone()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def run_settings():
    return RunSettings(
        enabled=True,
        checkout_time=datetime(2026, 1, 1, 10, 0).time(),
        grace_minutes=30,
        room_rate=Decimal("100"),
        hall_rate=Decimal("500"),
        last_run=None,
        timezone=TZ,
    )


@pytest.fixture
def make_resource(db):
    def _make(name="Room 1", type=ResourceType.ROOM, custom_name=None):
        resource = Resource(display_name=name, custom_name=custom_name, type=type)
        db.add(resource)
        db.commit()
        return resource
    return _make


@pytest.fixture
def make_booking(db, make_resource):
    def _make(check_in, resource=None, status=BookingStatus.BOOKED, actual_check_in=None, guest="Guest", mobile=None, processed=False):
        resource = resource or make_resource()
        booking = Booking(
            resource_id=resource.id,
            client_name=guest,
            client_mobile=mobile,
            status=status,
            check_in=check_in,
            actual_check_in=actual_check_in,
            auto_checkout_processed=processed,
        )
        db.add(booking)
        db.commit()
        return booking
    return _make


@pytest.fixture
def put_settings(db):
    def _put(**values):
        for key, value in values.items():
            row = db.get(SystemSetting, key)
            if row is None:
                db.add(SystemSetting(setting_key=key, setting_value=value))
            else:
                row.setting_value = value
        db.commit()
    return _put
