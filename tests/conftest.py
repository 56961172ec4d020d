from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from boardinghouse import create_app
from boardinghouse.config import TestingConfig
from boardinghouse.extensions import db as _db
from boardinghouse.models import Room, Tenant, User


class RecordingSink:
    """Notification sink that keeps every delivery in memory."""

    def __init__(self):
        self.sent = []

    def notify(self, recipient, type, message, metadata=None, expires_at=None, title=None):
        self.sent.append({
            "recipient": recipient,
            "type": type,
            "title": title,
            "message": message,
            "metadata": metadata or {},
            "expires_at": expires_at,
        })

    @property
    def titles(self):
        return [n["title"] for n in self.sent]

    def clear(self):
        self.sent.clear()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def app(sink):
    app = create_app(TestingConfig, notification_sink=sink)
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin(db):
    user = User(name="House Admin", email="admin@example.com", role="admin")
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def staff(db):
    user = User(name="Front Desk", email="desk@example.com", role="staff")
    db.session.add(user)
    db.session.commit()
    return user


def _headers(user_id, role):
    token = create_access_token(identity=str(user_id), additional_claims={"role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(admin):
    return _headers(admin.id, "admin")


@pytest.fixture
def staff_headers(staff):
    return _headers(staff.id, "staff")


@pytest.fixture
def tenant_headers(app):
    return _headers(999, "tenant")


@pytest.fixture
def make_room(db):
    def _make(room_number="R101", capacity=1, monthly_rent="5000.00", security_deposit="5000.00",
              room_type=None, status="available"):
        room = Room(
            room_number=room_number,
            room_type=room_type or {1: "single", 2: "double", 3: "triple", 4: "quad"}[capacity],
            capacity=capacity,
            monthly_rent=Decimal(monthly_rent),
            security_deposit=Decimal(security_deposit),
            status=status,
        )
        db.session.add(room)
        db.session.commit()
        return room
    return _make


@pytest.fixture
def make_tenant(db):
    counter = {"n": 0}

    def _make(first_name="Ana", last_name="Cruz", email=None, **fields):
        counter["n"] += 1
        tenant = Tenant(
            first_name=first_name,
            last_name=last_name,
            email=email or f"tenant{counter['n']}@example.com",
            **fields,
        )
        db.session.add(tenant)
        db.session.commit()
        return tenant
    return _make
