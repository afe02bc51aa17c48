import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from blood_scheduler.db.session import build_engine, get_db  # noqa: E402
from blood_scheduler.main import app  # noqa: E402
from blood_scheduler.models import Base, BloodRequest, TimeSlot, UrgencyLevel  # noqa: E402
from blood_scheduler.services import outbound  # noqa: E402
from blood_scheduler.services.capacity import define_slot  # noqa: E402

LOCATION_ID = 10


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'scheduler.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def reset_outbound():
    yield
    outbound.unsubscribe_all()


@pytest.fixture
def make_slot(db):
    def _make_slot(**overrides):
        values = dict(
            location_id=LOCATION_ID,
            day_of_week=2,
            time_slot=TimeSlot.morning,
            hour_window=(7, 8),
            total_capacity=1,
            effective_date=date(2024, 1, 1),
            expiry_date=date(2024, 12, 31),
            actor_user_id=1,
        )
        values.update(overrides)
        return define_slot(db, **values)

    return _make_slot


@pytest.fixture
def make_blood_request(db):
    def _make_blood_request(**overrides):
        values = dict(
            blood_group_id=1,
            component_type_id=1,
            quantity_units=2,
            urgency_level=UrgencyLevel.medium,
            is_emergency=False,
        )
        values.update(overrides)
        blood_request = BloodRequest(**values)
        db.add(blood_request)
        db.commit()
        return blood_request

    return _make_blood_request


@pytest.fixture
def api_client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
