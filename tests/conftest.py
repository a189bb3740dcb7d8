import os
import sys
from datetime import date, datetime, timedelta
from pathlib import Path

import pytest
from werkzeug.security import generate_password_hash

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("FLASK_ENV", "testing")

from app import app as flask_app  # noqa: E402
from database import db as _db  # noqa: E402
from extensions import limiter  # noqa: E402
from models import (  # noqa: E402
    Client,
    CuttingOrder,
    CuttingOrderLine,
    Fabric,
    Garment,
    GarmentSize,
    User,
)

XHR = {"X-Requested-With": "XMLHttpRequest"}


@pytest.fixture()
def app():
    with flask_app.app_context():
        yield flask_app


@pytest.fixture()
def db(app):
    """Fresh schema per test."""
    _db.create_all()
    yield _db
    _db.session.remove()
    _db.drop_all()


@pytest.fixture()
def client(app, db):
    from blueprints.auth import failed_login_attempts

    failed_login_attempts.clear()
    limiter.reset()
    return app.test_client()


@pytest.fixture()
def admin_user(db):
    user = User(username="admin", password=generate_password_hash("pass"), role="admin")
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture()
def admin_client(client, admin_user):
    """Client logged in as the administrator."""
    client.post("/auth/login", data={"username": "admin", "password": "pass"})
    return client


@pytest.fixture()
def upload_dir(app, tmp_path):
    """Point UPLOAD_FOLDER at a temporary directory."""
    old = app.config.get("UPLOAD_FOLDER")
    app.config["UPLOAD_FOLDER"] = str(tmp_path / "uploads")
    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)
    yield Path(app.config["UPLOAD_FOLDER"])
    app.config["UPLOAD_FOLDER"] = old


@pytest.fixture()
def make_client(db):
    def _make(name="Confecciones Sur", **kwargs):
        c = Client(name=name, **kwargs)
        db.session.add(c)
        db.session.commit()
        return c

    return _make


@pytest.fixture()
def make_fabric(db):
    def _make(article="ART-1", color="Azul", client=None, **kwargs):
        kwargs.setdefault("description", "")
        kwargs.setdefault("meters", 10.0)
        kwargs.setdefault("shipping_date", date(2024, 3, 1))
        f = Fabric(
            article=article,
            color=color,
            client_id=client.id if client else None,
            **kwargs,
        )
        db.session.add(f)
        db.session.commit()
        return f

    return _make


@pytest.fixture()
def make_order(db):
    """Order with one line per ``(fabric, meters)`` and optional garments."""

    def _make(client, lines, lot_number="OC240301001", garments=None, **kwargs):
        order = CuttingOrder(lot_number=lot_number, client_id=client.id, **kwargs)
        db.session.add(order)
        db.session.flush()
        for fabric, meters, *remarks in lines:
            db.session.add(
                CuttingOrderLine(
                    order_id=order.id,
                    fabric_id=fabric.id,
                    meters=meters,
                    remarks=remarks[0] if remarks else None,
                )
            )
        for name, sizes in (garments or {}).items():
            garment = Garment(order_id=order.id, name=name)
            db.session.add(garment)
            db.session.flush()
            for size, qty in sizes:
                db.session.add(GarmentSize(garment_id=garment.id, size=size, quantity=qty))
        db.session.commit()
        return order

    return _make


def days_ago(n):
    return datetime.utcnow() - timedelta(days=n)
