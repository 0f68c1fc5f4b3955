"""
Shared pytest fixtures for the Field Activity Call Sampling test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_farmer / make_activity: ORM factories for the sampling domain
"""

from datetime import timedelta
from itertools import count

import pytest

from fieldcall import create_app
from fieldcall.models import db as _db
from fieldcall.models.activity import Activity, Farmer
from fieldcall.utils.helpers import today

_mobile_seq = count(9000000000)
_activity_seq = count(1)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
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
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Domain factories ─────────────────────────────────────────────────────


@pytest.fixture()
def make_farmer():
    """Factory: persist and return a Farmer."""
    def _make(name="Farmer", **kwargs):
        farmer = Farmer(
            name=name,
            mobile_number=kwargs.pop("mobile_number", str(next(_mobile_seq))),
            **kwargs,
        )
        _db.session.add(farmer)
        _db.session.flush()
        return farmer
    return _make


@pytest.fixture()
def make_activity(make_farmer):
    """Factory: persist an Activity with ``farmers`` new attendees.

    Defaults to an active Field Day dated 10 days ago, i.e. already past the
    default activity cooling window.
    """
    def _make(farmers=3, *, officer_id="FDA-1", activity_type="Field Day", days_ago=10,
              activity_date=None, lifecycle_status="active", first_sample_run=False,
              commit=True):
        seq = next(_activity_seq)
        activity = Activity(
            activity_id=f"ACT-{seq:05d}",
            type=activity_type,
            date=activity_date or today() - timedelta(days=days_ago),
            officer_id=officer_id,
            officer_name=f"Officer {officer_id}" if officer_id else None,
            location="Nashik",
            territory="MH-North",
            lifecycle_status=lifecycle_status,
            first_sample_run=first_sample_run,
        )
        if isinstance(farmers, int):
            farmers = [make_farmer(name=f"Farmer {seq}-{i}") for i in range(farmers)]
        activity.farmers = list(farmers)
        _db.session.add(activity)
        if commit:
            _db.session.commit()
        else:
            _db.session.flush()
        return activity
    return _make
