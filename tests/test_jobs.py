"""Tests for job intake and admin job deletion."""
from datetime import date, datetime

import pytest
from werkzeug.security import generate_password_hash

from app.crm import create_app
from app.crm.db import session_scope
from app.crm.models import AuditEvent, Base, User, UserRoleRecord
from app.crm.modules.customers.models import Customer, Unit
from app.crm.modules.jobs.models import Job, JobItem
from app.crm.modules.jobs.service import JobDraft, create_job_with_items
from app.crm.utils import IntakeValidationError


def _seed_customer(s, first, last, plates):
    c = Customer(
        first_name=first,
        last_name=last,
        address="Quezon City",
        phone_number="0917 555 0101",
        email=f"{first.lower()}@example.com",
    )
    s.add(c)
    s.flush()
    for i, plate in enumerate(plates):
        s.add(Unit(customer_id=c.id, brand="Honda", model=f"Click {i}", year=2022, plate_number=plate))
    s.flush()
    return c


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        admin = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        staff = User(email="staff@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        s.add_all([admin, staff])
        s.flush()
        s.add_all([UserRoleRecord(id=admin.id, role="admin"), UserRoleRecord(id=staff.id, role="staff")])
        _seed_customer(s, "Ana", "Cruz", ["ABC 123"])
        _seed_customer(s, "Ben", "Reyes", ["BEN 001", "BEN 002"])

    return app.test_client()


def _login(client, email="staff@example.com"):
    client.post("/auth/login", data={"email": email, "password": "pw"}, follow_redirects=True)
    with client.session_transaction() as sess:
        sess["csrf_token"] = "test-csrf"


def _customer(client, first_name):
    with session_scope(client.application) as s:
        c = s.query(Customer).filter(Customer.first_name == first_name).one()
        return c.id, [u.id for u in c.units]


def _job_form(customer_id, unit_id, **overrides):
    data = {
        "csrf_token": "test-csrf",
        "customer_id": str(customer_id),
        "unit_id": str(unit_id),
        "work_date": "2025-01-05",
        "duration": "1.5",
        "remarks": "Customer waited",
        "item_description": ["Oil change", "", "Chain adjust"],
        "item_products_used": ["Motul 10W-40", "Rags", ""],
        "action": "save",
    }
    data.update(overrides)
    return data


def _create_job(client, customer_id, unit_id):
    r = client.post("/jobs/new", data=_job_form(customer_id, unit_id))
    assert r.status_code == 200, r.data
    with session_scope(client.application) as s:
        return s.query(Job).order_by(Job.id.desc()).first().id


# ---------- Intake ----------
def test_new_job_page(client):
    _login(client)
    r = client.get("/jobs/new")
    assert r.status_code == 200
    assert b"customer-search" in r.data
    assert b"Work date" not in r.data


def test_search_results_rendered(client):
    _login(client)
    r = client.get("/jobs/new?q=cruz")
    assert r.status_code == 200
    assert b"Ana Cruz" in r.data
    assert b"Ben Reyes" not in r.data


def test_customer_with_one_unit_shows_details(client):
    _login(client)
    ana_id, _ = _customer(client, "Ana")
    r = client.get(f"/jobs/new?customer_id={ana_id}")
    assert r.status_code == 200
    assert b"2022 Honda Click 0 (ABC 123)" in r.data
    assert b"Work date" in r.data


def test_typing_drops_locked_customer_and_unit(client):
    _login(client)
    ana_id, _ = _customer(client, "Ana")
    page = client.get(f"/jobs/new?customer_id={ana_id}").get_data(as_text=True)

    # Unit section, details form and the "Selected" line go when the text changes.
    markup = page[:page.index("<script>")]
    assert markup.count("data-selection") == 3
    assert 'id="job-details" data-selection' in page

    script = page[page.index("<script>"):]
    handler = script[script.index('addEventListener("input"'):]
    assert "clearSelection();" in handler
    clear_fn = script[script.index("function clearSelection"):script.index('addEventListener("input"')]
    assert 'input[name="customer_id"]' in clear_fn
    assert 'input[name="unit_id"]' in clear_fn
    assert '[data-selection]' in clear_fn
    assert ".remove()" in clear_fn


def test_submit_after_selection_cleared_fails_validation(client):
    _login(client)
    r = client.post("/jobs/new", data=_job_form("", ""))
    assert r.status_code == 400
    assert b"Please select a customer" in r.data
    with session_scope(client.application) as s:
        assert s.query(Job).count() == 0


def test_customer_with_two_units_requires_choice(client):
    _login(client)
    ben_id, unit_ids = _customer(client, "Ben")
    r = client.get(f"/jobs/new?customer_id={ben_id}")
    assert b"Select a unit" in r.data
    assert b"Work date" not in r.data

    r = client.get(f"/jobs/new?customer_id={ben_id}&unit_id={unit_ids[1]}")
    assert b"Work date" in r.data


def test_customer_search_json(client):
    _login(client)
    r = client.get("/jobs/customer-search?q=ben%20002&seq=7")
    assert r.status_code == 200
    assert r.json["seq"] == 7
    assert [row["display_name"] for row in r.json["results"]] == ["Ben Reyes"]
    assert r.json["results"][0]["unit_count"] == 2

    r = client.get("/jobs/customer-search?q=b&seq=8")
    assert r.json["results"] == []


def test_customer_units_json(client):
    _login(client)
    ben_id, unit_ids = _customer(client, "Ben")
    r = client.get(f"/jobs/customers/{ben_id}/units")
    assert [u["id"] for u in r.json["units"]] == unit_ids
    assert r.json["units"][0]["plate_number"] == "BEN 001"


def test_create_job_keeps_described_items(client):
    _login(client)
    ana_id, (unit_id,) = _customer(client, "Ana")
    r = client.post("/jobs/new", data=_job_form(ana_id, unit_id))
    assert r.status_code == 200
    assert b"Job Created!" in r.data
    assert b'content="2;url=/dashboard"' in r.data

    with session_scope(client.application) as s:
        job = s.query(Job).one()
        assert job.work_date == date(2025, 1, 5)
        assert job.duration_hours == 1.5
        assert [(i.description, i.products_used) for i in job.items] == [
            ("Oil change", "Motul 10W-40"),
            ("Chain adjust", None),
        ]
        assert s.query(AuditEvent).filter(AuditEvent.action == "job.create").count() == 1


def test_create_job_without_items_rejected(client):
    _login(client)
    ana_id, (unit_id,) = _customer(client, "Ana")
    r = client.post("/jobs/new", data=_job_form(ana_id, unit_id, item_description=["", " "]))
    assert r.status_code == 400
    assert b"Please add at least one job item" in r.data
    with session_scope(client.application) as s:
        assert s.query(Job).count() == 0


def test_create_job_bad_duration_rejected(client):
    _login(client)
    ana_id, (unit_id,) = _customer(client, "Ana")
    r = client.post("/jobs/new", data=_job_form(ana_id, unit_id, duration="0"))
    assert r.status_code == 400
    assert b"Duration must be a number" in r.data


def test_unit_of_another_customer_is_not_used(client):
    _login(client)
    _, (ana_unit,) = _customer(client, "Ana")
    ben_id, _ = _customer(client, "Ben")
    r = client.post("/jobs/new", data=_job_form(ben_id, ana_unit))
    assert r.status_code == 400
    assert b"Please select a unit" in r.data
    with session_scope(client.application) as s:
        assert s.query(Job).count() == 0


def test_service_rejects_mismatched_unit(client):
    ana_id, _ = _customer(client, "Ana")
    _, ben_units = _customer(client, "Ben")
    d = JobDraft(customer_id=ana_id, unit_id=ben_units[0], work_date="2025-01-05", duration="1")
    d.update_item(0, "description", "Oil change")
    with session_scope(client.application) as s:
        user = s.query(User).filter(User.email == "staff@example.com").one()
        with pytest.raises(IntakeValidationError, match="does not belong"):
            create_job_with_items(s, d, user=user)


def test_add_item_row(client):
    _login(client)
    ana_id, (unit_id,) = _customer(client, "Ana")
    r = client.post("/jobs/new", data=_job_form(ana_id, unit_id, action="add"))
    assert r.status_code == 200
    assert r.data.count(b'name="item_description"') == 4
    with session_scope(client.application) as s:
        assert s.query(Job).count() == 0


# ---------- Delete ----------
def test_delete_requires_confirmation(client):
    _login(client, "admin@example.com")
    ana_id, (unit_id,) = _customer(client, "Ana")
    job_id = _create_job(client, ana_id, unit_id)

    r = client.post(f"/jobs/{job_id}/delete/confirm", data={"csrf_token": "test-csrf"}, follow_redirects=True)
    assert b"Click Delete first, then Confirm." in r.data
    with session_scope(client.application) as s:
        assert s.get(Job, job_id) is not None

    r = client.post(f"/jobs/{job_id}/delete", data={"csrf_token": "test-csrf"}, follow_redirects=True)
    assert r.status_code == 200
    assert f"/jobs/{job_id}/delete/confirm".encode() in r.data

    r = client.post(f"/jobs/{job_id}/delete/confirm", data={"csrf_token": "test-csrf"}, follow_redirects=True)
    assert b"Job deleted." in r.data
    with session_scope(client.application) as s:
        assert s.get(Job, job_id) is None
        assert s.query(JobItem).filter(JobItem.job_id == job_id).count() == 0
        assert s.query(AuditEvent).filter(AuditEvent.action == "job.delete").count() == 1


def test_delete_cancel(client):
    _login(client, "admin@example.com")
    ana_id, (unit_id,) = _customer(client, "Ana")
    job_id = _create_job(client, ana_id, unit_id)

    client.post(f"/jobs/{job_id}/delete", data={"csrf_token": "test-csrf"})
    r = client.post(f"/jobs/{job_id}/delete/cancel", data={"csrf_token": "test-csrf"}, follow_redirects=True)
    assert f"/jobs/{job_id}/delete/confirm".encode() not in r.data
    assert f"/jobs/{job_id}/delete\"".encode() in r.data

    r = client.post(f"/jobs/{job_id}/delete/confirm", data={"csrf_token": "test-csrf"}, follow_redirects=True)
    with session_scope(client.application) as s:
        assert s.get(Job, job_id) is not None


def test_staff_cannot_delete(client):
    _login(client)
    ana_id, (unit_id,) = _customer(client, "Ana")
    job_id = _create_job(client, ana_id, unit_id)

    r = client.post(f"/jobs/{job_id}/delete", data={"csrf_token": "test-csrf"})
    assert r.status_code == 403
    with session_scope(client.application) as s:
        assert s.get(Job, job_id) is not None


def test_items_removed_with_job_at_database_level(client):
    ana_id, (unit_id,) = _customer(client, "Ana")
    with session_scope(client.application) as s:
        job = Job(customer_id=ana_id, unit_id=unit_id, work_date=date(2025, 1, 5), duration_hours=1.0)
        s.add(job)
        s.flush()
        s.add(JobItem(job_id=job.id, description="Oil change", created_at=datetime.utcnow()))
        job_id = job.id

    with client.application.extensions["sqlalchemy_engine"].begin() as conn:
        conn.exec_driver_sql("DELETE FROM jobs WHERE id = ?", (job_id,))

    with session_scope(client.application) as s:
        assert s.query(JobItem).count() == 0
