"""Tests for customer intake."""
import pytest
from werkzeug.security import generate_password_hash

from app.crm import create_app
from app.crm.db import session_scope
from app.crm.models import AuditEvent, Base, User, UserRoleRecord
from app.crm.modules.customers.models import Customer, Unit


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        u = User(email="staff@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        s.add(u)
        s.flush()
        s.add(UserRoleRecord(id=u.id, role="staff"))

    return app.test_client()


def _login(client):
    client.post("/auth/login", data={"email": "staff@example.com", "password": "pw"}, follow_redirects=True)
    with client.session_transaction() as sess:
        sess["csrf_token"] = "test-csrf"


def _customer_form(**overrides):
    data = {
        "csrf_token": "test-csrf",
        "first_name": "Ana",
        "middle_initial": "Cecilia",
        "last_name": "Cruz",
        "address": "12 Rizal St, Quezon City",
        "phone_number": "0917 555 0101",
        "email": "ana@example.com",
        "unit_brand": ["Honda", "Yamaha"],
        "unit_model": ["Click 125", "NMAX"],
        "unit_year": ["2022", ""],
        "unit_plate_number": ["abc 123", "XYZ 789"],
        "action": "save",
    }
    data.update(overrides)
    return data


def test_customers_list_requires_auth(client):
    r = client.get("/customers")
    assert r.status_code == 302


def test_customers_hub(client):
    _login(client)
    r = client.get("/customers")
    assert r.status_code == 200
    assert b"Customer Management" in r.data
    assert b"No customers yet." in r.data


def test_create_customer_drops_partial_units(client):
    _login(client)
    r = client.post("/customers/new", data=_customer_form())
    assert r.status_code == 200
    assert b"Customer Created!" in r.data
    assert b'content="2;url=/customers"' in r.data

    with session_scope(client.application) as s:
        customers = s.query(Customer).all()
        assert len(customers) == 1
        c = customers[0]
        assert c.middle_initial == "C"
        assert c.display_name == "Ana C. Cruz"
        units = s.query(Unit).filter(Unit.customer_id == c.id).all()
        assert [(u.brand, u.model, u.year, u.plate_number) for u in units] == [("Honda", "Click 125", 2022, "ABC 123")]

        ev = s.query(AuditEvent).filter(AuditEvent.action == "customer.create").one()
        assert ev.entity_id == str(c.id)


def test_create_customer_without_complete_unit_writes_nothing(client):
    _login(client)
    r = client.post(
        "/customers/new",
        data=_customer_form(unit_brand=["Honda"], unit_model=["Click 125"], unit_year=["2022"], unit_plate_number=[""]),
    )
    assert r.status_code == 400
    assert b"Please add at least one complete motorcycle unit" in r.data
    # The form keeps what was typed.
    assert b'value="Ana"' in r.data

    with session_scope(client.application) as s:
        assert s.query(Customer).count() == 0
        assert s.query(Unit).count() == 0


def test_create_customer_missing_required_field(client):
    _login(client)
    r = client.post("/customers/new", data=_customer_form(address="  "))
    assert r.status_code == 400
    assert b"Address is required." in r.data
    with session_scope(client.application) as s:
        assert s.query(Customer).count() == 0


def test_create_customer_rejects_out_of_range_year(client):
    _login(client)
    r = client.post(
        "/customers/new",
        data=_customer_form(unit_brand=["Honda"], unit_model=["Click"], unit_year=["1850"], unit_plate_number=["A1"]),
    )
    assert r.status_code == 400
    assert b"Unit 1: year must be a whole number" in r.data


def test_add_and_remove_unit_rows(client):
    _login(client)
    r = client.post("/customers/new", data=_customer_form(action="add"))
    assert r.status_code == 200
    assert r.data.count(b'name="unit_brand"') == 3

    r = client.post("/customers/new", data=_customer_form(action="remove:0"))
    assert r.status_code == 200
    assert r.data.count(b'name="unit_brand"') == 1
    assert b'value="Yamaha"' in r.data

    with session_scope(client.application) as s:
        assert s.query(Customer).count() == 0


def test_recent_customers_listed_with_unit_count(client):
    _login(client)
    client.post("/customers/new", data=_customer_form(unit_year=["2022", "2023"]))
    r = client.get("/customers")
    assert r.status_code == 200
    assert b"Ana C. Cruz" in r.data
    assert b"<td>2</td>" in r.data
