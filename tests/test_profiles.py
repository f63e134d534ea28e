"""Tests for customer profiles and customer search."""
from datetime import date, datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.crm import create_app
from app.crm.db import session_scope
from app.crm.models import Base, User, UserRoleRecord
from app.crm.modules.customers.models import Customer, Unit
from app.crm.modules.jobs.models import Job, JobItem
from app.crm.modules.profiles.service import get_customer_profile, search_customers


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        staff = User(email="staff@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        s.add(staff)
        s.flush()
        s.add(UserRoleRecord(id=staff.id, role="staff"))

        c = Customer(
            first_name="Ana",
            middle_initial="C",
            last_name="Cruz",
            address="12 Rizal St",
            phone_number="0917 555 0101",
            email="ana@example.com",
        )
        s.add(c)
        s.flush()
        u = Unit(customer_id=c.id, brand="Honda", model="Click 125", year=2022, plate_number="ABC 123")
        s.add(u)
        s.flush()

        t0 = datetime(2025, 3, 1, 9, 0)
        older = Job(customer_id=c.id, unit_id=u.id, work_date=date(2025, 1, 5), duration_hours=1.0, created_at=t0)
        newer = Job(
            customer_id=c.id,
            unit_id=u.id,
            work_date=date(2025, 3, 2),
            duration_hours=2.5,
            remarks="Rush job",
            created_at=t0,
        )
        s.add_all([older, newer])
        s.flush()
        s.add_all(
            [
                JobItem(job_id=older.id, description="Oil change", products_used="Motul 10W-40", created_at=t0),
                JobItem(job_id=newer.id, description="Brake pads", created_at=t0),
                JobItem(job_id=newer.id, description="Chain adjust", created_at=t0 + timedelta(seconds=1)),
            ]
        )

        s.add(Customer(first_name="Ben", last_name="Reyes", address="Makati", phone_number="0918", email="ben@example.com"))

    return app.test_client()


def _login(client):
    client.post("/auth/login", data={"email": "staff@example.com", "password": "pw"}, follow_redirects=True)


def _ana_id(client):
    with session_scope(client.application) as s:
        return s.query(Customer).filter(Customer.first_name == "Ana").one().id


def test_profile_renders_history(client):
    _login(client)
    r = client.get(f"/profiles/{_ana_id(client)}")
    assert r.status_code == 200
    body = r.data.decode()
    assert "Ana C. Cruz" in body
    assert "January 5, 2025" in body
    assert "1 hour" in body
    assert "1 hours" not in body
    assert "2.5 hours" in body
    assert "2022 Honda Click 125 (ABC 123)" in body
    assert body.index("March 2, 2025") < body.index("January 5, 2025")
    assert body.index("Brake pads") < body.index("Chain adjust")


def test_profile_not_found(client):
    _login(client)
    r = client.get("/profiles/9999")
    assert r.status_code == 404
    assert b"Customer not found." in r.data


def test_profile_json(client):
    _login(client)
    r = client.get(f"/profiles/{_ana_id(client)}.json")
    assert r.status_code == 200
    data = r.json
    assert data["customer"]["email"] == "ana@example.com"
    assert [j["work_date"] for j in data["jobs"]] == ["2025-03-02", "2025-01-05"]
    assert [i["description"] for i in data["jobs"][0]["items"]] == ["Brake pads", "Chain adjust"]
    assert data["units"][0]["plate_number"] == "ABC 123"

    r = client.get("/profiles/9999.json")
    assert r.status_code == 404
    assert r.json["error"] == "Customer not found."


def test_profile_hides_admin_actions_from_staff(client):
    _login(client)
    r = client.get(f"/profiles/{_ana_id(client)}")
    assert b"Edit Profile" not in r.data
    assert b"/delete" not in r.data


def test_profiles_search_page(client):
    _login(client)
    r = client.get("/profiles")
    assert r.status_code == 200
    assert b"+ Create New Customer" in r.data

    r = client.get("/profiles?q=abc")
    assert b"Ana C. Cruz" in r.data
    assert b"Ben Reyes" not in r.data

    r = client.get("/profiles?q=zzz")
    assert b'No customers match "zzz".' in r.data


def test_search_customers_service(client):
    with session_scope(client.application) as s:
        assert search_customers(s, "a") == []
        names = [r.display_name for r in search_customers(s, "example.com")]
        assert names == ["Ana C. Cruz", "Ben Reyes"]
        assert [r.display_name for r in search_customers(s, "ana cruz")] == ["Ana C. Cruz"]
        assert [r.unit_count for r in search_customers(s, "ben")] == [0]


def test_get_customer_profile_missing(client):
    with session_scope(client.application) as s:
        assert get_customer_profile(s, 9999) is None
        profile = get_customer_profile(s, _ana_id(client))
        assert len(profile.units) == 1
        assert [j.duration_hours for j in profile.jobs] == [2.5, 1.0]


def test_plate_entered_lowercase_shows_uppercase(client):
    _login(client)
    with client.session_transaction() as sess:
        sess["csrf_token"] = "test-csrf"
    r = client.post(
        "/customers/new",
        data={
            "csrf_token": "test-csrf",
            "first_name": "Carla",
            "last_name": "Santos",
            "address": "Pasig",
            "phone_number": "0919",
            "email": "carla@example.com",
            "unit_brand": "Yamaha",
            "unit_model": "Mio",
            "unit_year": "2021",
            "unit_plate_number": "xyz 789",
        },
    )
    assert r.status_code == 200

    r = client.get("/profiles?q=xyz")
    assert b"Carla Santos" in r.data
    with session_scope(client.application) as s:
        cid = s.query(Customer).filter(Customer.first_name == "Carla").one().id
    r = client.get(f"/profiles/{cid}")
    assert b"(XYZ 789)" in r.data
