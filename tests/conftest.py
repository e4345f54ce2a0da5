"""
Pytest configuration and fixtures
"""
from datetime import datetime

import pytest

from buyer_leads_app.config import settings
from buyer_leads_app.database import database
from buyer_leads_app.database.models import User
from buyer_leads_app.rate_limit import RateLimiter


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Fresh SQLite file per test"""
    for name in ("DB_HOST", "DB_NAME", "DB_USER"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DB_SQLITE_PATH", str(tmp_path / "test.db"))
    database.reset_engine()
    database.init_db()
    yield
    database.reset_engine()


@pytest.fixture
def owner_id(db):
    return settings.DEMO_USER_ID


@pytest.fixture
def other_owner_id(db):
    s = database.get_session()
    try:
        s.add(User(id="other-user", email="other@example.com", name="Other User", created_at=datetime.utcnow()))
        s.commit()
    finally:
        s.close()
    return "other-user"


@pytest.fixture
def client(db):
    from buyer_leads_app.api_web import app

    app.config["TESTING"] = True
    app.config["RATE_LIMITER"] = RateLimiter()
    app.config["BULK_IMPORT_MAX_ROWS"] = settings.BULK_IMPORT_MAX_ROWS
    return app.test_client()


@pytest.fixture
def sample_buyer_data():
    return {
        "fullName": "John Doe",
        "phone": "9876543210",
        "city": "Chandigarh",
        "propertyType": "Apartment",
        "bhk": "2",
        "purpose": "Buy",
        "timeline": "0-3m",
        "source": "Website",
    }


@pytest.fixture
def csv_header():
    return ["fullName", "email", "phone", "city", "propertyType", "bhk", "purpose",
            "budgetMin", "budgetMax", "timeline", "source", "notes", "tags", "status"]
