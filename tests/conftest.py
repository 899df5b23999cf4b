"""
Shared pytest fixtures for the CivicFix test suite.

Provides:
    - app: Flask application (session-scoped, local stub classifier)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_report / make_team: direct-to-DB factories
    - image_upload: multipart image tuple builder
"""

import io
import tempfile
from datetime import datetime, timedelta, timezone

import pytest
from PIL import Image

from civicfix import create_app
from civicfix.models import db as _db
from civicfix.models.report import Report
from civicfix.models.team import Team
from civicfix.services.auto_assignment import reset_round_robin


def encode_image(fmt="PNG", size=(8, 8)):
    buf = io.BytesIO()
    Image.new("RGB", size, (120, 120, 120)).save(buf, format=fmt)
    return buf.getvalue()


PNG_BYTES = encode_image("PNG")
JPEG_BYTES = encode_image("JPEG")
_BYTES_BY_MIME = {"image/png": PNG_BYTES, "image/jpeg": JPEG_BYTES}


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    from civicfix.config import TestingConfig
    TestingConfig.SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    TestingConfig.UPLOAD_FOLDER = tempfile.mkdtemp(prefix="civicfix-uploads-")

    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        reset_round_robin()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
        reset_round_robin()


@pytest.fixture
def client(app):
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture
def make_report():
    """Insert a report row directly. ``age_hours`` back-dates created_at."""
    def _make(age_hours=0, commit=True, **kw):
        fields = {
            "category": "Pothole",
            "severity": "high",
            "status": "pending",
            "description": "Large pothole in the road surface",
            "latitude": 8.484,
            "longitude": -13.2299,
            "device_id": "device-1-test",
        }
        fields.update(kw)
        fields["created_at"] = datetime.now(timezone.utc) - timedelta(hours=age_hours)
        report = Report(**fields)
        _db.session.add(report)
        if commit:
            _db.session.commit()
        else:
            _db.session.flush()
        return report
    return _make


@pytest.fixture
def make_team():
    def _make(name="Roads Team Alpha", department="Public Works", **kw):
        team = Team(name=name, department=department, **kw)
        _db.session.add(team)
        _db.session.commit()
        return team
    return _make


@pytest.fixture
def image_upload():
    """Return a ``(stream, filename, mimetype)`` tuple for multipart posts."""
    def _make(filename="pothole.png", mimetype="image/png", data=None):
        if data is None:
            data = _BYTES_BY_MIME.get(mimetype, PNG_BYTES)
        return (io.BytesIO(data), filename, mimetype)
    return _make
