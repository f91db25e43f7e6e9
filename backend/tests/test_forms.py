"""Forms API for operators: CRUD, publishing, listing, summaries and CSV export."""

import csv
import io
import uuid
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient
from sqlalchemy import inspect

from portal.models.form import Form
from portal.models.form_submission import FormSubmission
from portal.models.profile import Profile
from portal.services.auth import create_access_token, hash_password
from portal.services.forms import store

FORMS_URL = "/api/v1/forms/"
FORM_URL = "/api/v1/forms/{form_id}"
PUBLISH_URL = "/api/v1/forms/{form_id}/publish"
RESPONSES_URL = "/api/v1/forms/{form_id}/responses"
SUMMARY_URL = "/api/v1/forms/{form_id}/summary"
DOWNLOAD_URL = "/api/v1/forms/{form_id}/responses/download"

NONEXISTENT_UUID = str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fields():
    return [
        {"id": "year", "kind": "single_choice", "label": "Year of study", "options": ["1", "2", "3"], "required": True},
        {"id": "clubs", "kind": "multi_choice", "label": "Clubs", "options": ["Chess", "Choir"]},
        {"id": "comment", "kind": "short_text", "label": "Comment"},
    ]


def _payload(**overrides):
    base = {
        "title": "Orientation Survey",
        "description": "Tell us about your first week",
        "form_kind": "form",
        "fields": _fields(),
    }
    base.update(overrides)
    return base


def _create_form(db, creator, title="Orientation Survey", published=False, form_kind="form", created_at=None, **extra):
    form = Form(
        title=title,
        description=extra.pop("description", None),
        form_kind=form_kind,
        fields=extra.pop("fields", _fields()),
        published=published,
        created_by=creator.id,
    )
    if created_at is not None:
        form.created_at = created_at
    db.add(form)
    db.commit()
    db.refresh(form)
    return form


def _create_student(db, email, first_name="Sam", last_name="Lee", student_id=None) -> Profile:
    user = Profile(
        email=email,
        first_name=first_name,
        last_name=last_name,
        student_id=student_id,
        password_hash=hash_password("strongpassword123"),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _add_submission(db, form, user, answers, submitted_at=None):
    sub = FormSubmission(
        form_id=form.id,
        user_id=user.id,
        answers=answers,
        submitted_at=submitted_at or datetime.now(timezone.utc),
    )
    db.add(sub)
    db.commit()
    return sub


# ===========================================================================
# Create
# ===========================================================================


class TestCreateForm:
    def test_create_success(self, client: TestClient, admin, admin_headers):
        resp = client.post(FORMS_URL, json=_payload(), headers=admin_headers)
        assert resp.status_code == 201
        data = resp.json()
        assert data["title"] == "Orientation Survey"
        assert data["published"] is False
        assert data["created_by"] == str(admin.id)
        assert [f["id"] for f in data["fields"]] == ["year", "clubs", "comment"]
        assert "options" not in data["fields"][2]

    def test_create_published_poll(self, client: TestClient, admin_headers):
        resp = client.post(FORMS_URL, json=_payload(form_kind="poll", published=True), headers=admin_headers)
        assert resp.status_code == 201
        assert resp.json()["form_kind"] == "poll"
        assert resp.json()["published"] is True

    def test_create_assigns_missing_field_ids(self, client: TestClient, admin_headers):
        fields = [{"kind": "long_text", "label": "Anything else?"}]
        resp = client.post(FORMS_URL, json=_payload(fields=fields), headers=admin_headers)
        assert resp.status_code == 201
        assert resp.json()["fields"][0]["id"]

    def test_create_short_title(self, client: TestClient, db, admin_headers):
        resp = client.post(FORMS_URL, json=_payload(title="Hi"), headers=admin_headers)
        assert resp.status_code == 422
        assert "at least 3 characters" in resp.json()["detail"]
        assert db.query(Form).count() == 0

    def test_create_no_fields(self, client: TestClient, admin_headers):
        resp = client.post(FORMS_URL, json=_payload(fields=[]), headers=admin_headers)
        assert resp.status_code == 422
        assert "at least one field" in resp.json()["detail"]

    def test_create_choice_with_one_option(self, client: TestClient, admin_headers):
        fields = [{"id": "q", "kind": "single_choice", "label": "Pick", "options": ["Only"]}]
        resp = client.post(FORMS_URL, json=_payload(fields=fields), headers=admin_headers)
        assert resp.status_code == 422

    def test_create_duplicate_field_ids(self, client: TestClient, admin_headers):
        fields = [
            {"id": "q", "kind": "short_text", "label": "One"},
            {"id": "q", "kind": "short_text", "label": "Two"},
        ]
        resp = client.post(FORMS_URL, json=_payload(fields=fields), headers=admin_headers)
        assert resp.status_code == 422
        assert "Duplicate field id" in resp.json()["detail"]

    def test_create_requires_admin(self, client: TestClient, student_headers):
        resp = client.post(FORMS_URL, json=_payload(), headers=student_headers)
        assert resp.status_code == 403


# ===========================================================================
# Read / list
# ===========================================================================


class TestListForms:
    def test_newest_first(self, client: TestClient, db, admin, admin_headers):
        now = datetime(2026, 5, 1, 12, 0)
        _create_form(db, admin, title="Oldest form", created_at=now - timedelta(days=2))
        _create_form(db, admin, title="Newest form", created_at=now)
        _create_form(db, admin, title="Middle form", created_at=now - timedelta(days=1))

        resp = client.get(FORMS_URL, headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 3
        assert [f["title"] for f in data["items"]] == ["Newest form", "Middle form", "Oldest form"]

    def test_filter_by_kind(self, client: TestClient, db, admin, admin_headers):
        _create_form(db, admin, title="Lunch poll", form_kind="poll")
        _create_form(db, admin, title="Housing form", form_kind="form")

        resp = client.get(FORMS_URL, params={"form_kind": "poll"}, headers=admin_headers)
        assert [f["title"] for f in resp.json()["items"]] == ["Lunch poll"]

    def test_search_title_and_description(self, client: TestClient, db, admin, admin_headers):
        _create_form(db, admin, title="Library Hours")
        _create_form(db, admin, title="Canteen", description="Rate the LIBRARY café")
        _create_form(db, admin, title="Sports Day")

        resp = client.get(FORMS_URL, params={"search": "library"}, headers=admin_headers)
        assert sorted(f["title"] for f in resp.json()["items"]) == ["Canteen", "Library Hours"]

    def test_search_treats_wildcards_literally(self, client: TestClient, db, admin, admin_headers):
        _create_form(db, admin, title="100% attendance")
        _create_form(db, admin, title="Attendance")

        resp = client.get(FORMS_URL, params={"search": "%"}, headers=admin_headers)
        assert [f["title"] for f in resp.json()["items"]] == ["100% attendance"]

    def test_filter_by_published(self, client: TestClient, db, admin, admin_headers):
        _create_form(db, admin, title="Live form", published=True)
        _create_form(db, admin, title="Draft form")

        resp = client.get(FORMS_URL, params={"published": "false"}, headers=admin_headers)
        assert [f["title"] for f in resp.json()["items"]] == ["Draft form"]

    def test_pagination(self, client: TestClient, db, admin, admin_headers):
        now = datetime(2026, 5, 1, 12, 0)
        for i in range(5):
            _create_form(db, admin, title=f"Form number {i}", created_at=now + timedelta(minutes=i))

        resp = client.get(FORMS_URL, params={"page": 2, "page_size": 2}, headers=admin_headers)
        data = resp.json()
        assert data["total"] == 5
        assert data["page"] == 2
        assert [f["title"] for f in data["items"]] == ["Form number 2", "Form number 1"]

    def test_response_count(self, client: TestClient, db, admin, admin_headers):
        form = _create_form(db, admin, published=True)
        _create_form(db, admin, title="Nobody answered")
        _add_submission(db, form, _create_student(db, "a@example.com"), {"year": "1"})
        _add_submission(db, form, _create_student(db, "b@example.com"), {"year": "2"})

        resp = client.get(FORMS_URL, headers=admin_headers)
        counts = {f["title"]: f["response_count"] for f in resp.json()["items"]}
        assert counts == {"Orientation Survey": 2, "Nobody answered": 0}

    def test_list_requires_admin(self, client: TestClient, student_headers):
        resp = client.get(FORMS_URL, headers=student_headers)
        assert resp.status_code == 403


class TestGetForm:
    def test_get_success(self, client: TestClient, db, admin, admin_headers):
        form = _create_form(db, admin)
        _add_submission(db, form, _create_student(db, "a@example.com"), {"year": "1"})

        resp = client.get(FORM_URL.format(form_id=form.id), headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["id"] == str(form.id)
        assert data["response_count"] == 1

    def test_get_not_found(self, client: TestClient, admin_headers):
        resp = client.get(FORM_URL.format(form_id=NONEXISTENT_UUID), headers=admin_headers)
        assert resp.status_code == 404


# ===========================================================================
# Update / publish / delete
# ===========================================================================


class TestUpdateForm:
    def test_update_title_and_fields(self, client: TestClient, db, admin, admin_headers):
        form = _create_form(db, admin)
        new_fields = [{"id": "only", "kind": "date", "label": "Arrival date", "required": True}]

        resp = client.put(
            FORM_URL.format(form_id=form.id),
            json={"title": "Arrival Survey", "fields": new_fields},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["title"] == "Arrival Survey"
        assert data["fields"] == [{"id": "only", "kind": "date", "label": "Arrival date", "required": True}]
        assert data["description"] is None

    def test_update_empty_patch(self, client: TestClient, db, admin, admin_headers):
        form = _create_form(db, admin)
        resp = client.put(FORM_URL.format(form_id=form.id), json={}, headers=admin_headers)
        assert resp.status_code == 422
        assert resp.json()["detail"] == "No fields to update"

    def test_update_short_title(self, client: TestClient, db, admin, admin_headers):
        form = _create_form(db, admin)
        resp = client.put(FORM_URL.format(form_id=form.id), json={"title": "ab"}, headers=admin_headers)
        assert resp.status_code == 422
        db.refresh(form)
        assert form.title == "Orientation Survey"

    def test_update_empty_fields(self, client: TestClient, db, admin, admin_headers):
        form = _create_form(db, admin)
        resp = client.put(FORM_URL.format(form_id=form.id), json={"fields": []}, headers=admin_headers)
        assert resp.status_code == 422

    def test_update_not_found(self, client: TestClient, admin_headers):
        resp = client.put(FORM_URL.format(form_id=NONEXISTENT_UUID), json={"title": "Whatever"}, headers=admin_headers)
        assert resp.status_code == 404


class TestPublishForm:
    def test_publish_and_unpublish(self, client: TestClient, db, admin, admin_headers):
        form = _create_form(db, admin)

        resp = client.put(PUBLISH_URL.format(form_id=form.id), json={"published": True}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["published"] is True

        resp = client.put(PUBLISH_URL.format(form_id=form.id), json={"published": False}, headers=admin_headers)
        assert resp.json()["published"] is False

    def test_publish_visible_to_respondents(self, client: TestClient, db, admin, admin_headers, student_headers):
        form = _create_form(db, admin)
        assert client.get("/api/v1/forms/available", headers=student_headers).json() == []

        client.put(PUBLISH_URL.format(form_id=form.id), json={"published": True}, headers=admin_headers)
        available = client.get("/api/v1/forms/available", headers=student_headers).json()
        assert [f["id"] for f in available] == [str(form.id)]

    def test_publish_not_found(self, client: TestClient, admin_headers):
        resp = client.put(PUBLISH_URL.format(form_id=NONEXISTENT_UUID), json={"published": True}, headers=admin_headers)
        assert resp.status_code == 404


class TestDeleteForm:
    def test_delete_removes_submissions(self, client: TestClient, db, admin, admin_headers):
        form = _create_form(db, admin, published=True)
        other = _create_form(db, admin, title="Other form", published=True)
        student = _create_student(db, "a@example.com")
        _add_submission(db, form, student, {"year": "1"})
        _add_submission(db, other, student, {"year": "2"})
        form_id = form.id

        resp = client.delete(FORM_URL.format(form_id=form_id), headers=admin_headers)
        assert resp.status_code == 204

        db.expire_all()
        assert db.get(Form, form_id) is None
        assert db.query(FormSubmission).filter(FormSubmission.form_id == form_id).count() == 0
        assert db.query(FormSubmission).count() == 1

    def test_delete_not_found(self, client: TestClient, admin_headers):
        resp = client.delete(FORM_URL.format(form_id=NONEXISTENT_UUID), headers=admin_headers)
        assert resp.status_code == 404

    def test_delete_requires_admin(self, client: TestClient, db, admin, student_headers):
        form = _create_form(db, admin)
        resp = client.delete(FORM_URL.format(form_id=form.id), headers=student_headers)
        assert resp.status_code == 403


# ===========================================================================
# Responses, summary and export
# ===========================================================================


class TestResponsesAndSummary:
    def test_list_responses_with_names(self, client: TestClient, db, admin, admin_headers):
        form = _create_form(db, admin, published=True)
        ana = _create_student(db, "ana@example.com", first_name="Ana", last_name="Diaz", student_id="S-1")
        _add_submission(db, form, ana, {"year": "1"})

        resp = client.get(RESPONSES_URL.format(form_id=form.id), headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 1
        item = data["items"][0]
        assert item["respondent_name"] == "Ana Diaz"
        assert item["respondent_student_id"] == "S-1"
        assert item["answers"] == {"year": "1"}

    def test_submissions_load_respondents_up_front(self, db, admin):
        form = _create_form(db, admin, published=True)
        for i in range(3):
            _add_submission(db, form, _create_student(db, f"s{i}@example.com", first_name=f"S{i}"), {"year": "1"})
        db.expire_all()

        submissions = store.list_submissions(db, form.id)
        assert len(submissions) == 3
        assert all("respondent" not in inspect(sub).unloaded for sub in submissions)
        assert sorted(r.respondent_name for r in store.response_records(submissions)) == ["S0 Lee", "S1 Lee", "S2 Lee"]

    def test_respondent_without_name(self, client: TestClient, db, admin, admin_headers):
        form = _create_form(db, admin, published=True)
        _add_submission(db, form, _create_student(db, "x@example.com", first_name=None, last_name=None), {})

        item = client.get(RESPONSES_URL.format(form_id=form.id), headers=admin_headers).json()["items"][0]
        assert item["respondent_name"] == "Unknown User"
        assert item["respondent_student_id"] is None

    def test_summary(self, client: TestClient, db, admin, admin_headers):
        form = _create_form(db, admin, published=True)
        _add_submission(db, form, _create_student(db, "a@example.com"), {"year": "1", "clubs": ["Chess"], "comment": "Great"})
        _add_submission(db, form, _create_student(db, "b@example.com"), {"year": "1", "clubs": []})
        _add_submission(db, form, _create_student(db, "c@example.com"), {"year": "2", "clubs": ["Chess", "Choir"]})

        resp = client.get(SUMMARY_URL.format(form_id=form.id), headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["total_responses"] == 3

        year, clubs, comment = data["fields"]
        assert year["summary_type"] == "choice"
        assert [(o["option"], o["count"], o["percentage"]) for o in year["options"]] == [
            ("1", 2, 67),
            ("2", 1, 33),
            ("3", 0, 0),
        ]
        assert [(o["option"], o["count"], o["percentage"]) for o in clubs["options"]] == [
            ("Chess", 2, 67),
            ("Choir", 1, 33),
        ]
        assert comment["summary_type"] == "text"
        assert comment["answered"] == 1
        assert comment["skipped"] == 2
        assert comment["answers"] == ["Great"]

    def test_summary_without_responses(self, client: TestClient, db, admin, admin_headers):
        form = _create_form(db, admin)
        data = client.get(SUMMARY_URL.format(form_id=form.id), headers=admin_headers).json()
        assert data["total_responses"] == 0
        assert all(o["percentage"] == 0 for o in data["fields"][0]["options"])

    def test_summary_not_found(self, client: TestClient, admin_headers):
        resp = client.get(SUMMARY_URL.format(form_id=NONEXISTENT_UUID), headers=admin_headers)
        assert resp.status_code == 404

    def test_download_csv(self, client: TestClient, db, admin, admin_headers):
        form = _create_form(db, admin, title="Club Survey", published=True)
        ana = _create_student(db, "ana@example.com", first_name="Ana", last_name="Diaz", student_id="S-1")
        _add_submission(
            db,
            form,
            ana,
            {"year": "3", "clubs": ["Chess", "Choir"], "comment": "Fun, mostly"},
            submitted_at=datetime(2026, 4, 2, 8, 15),
        )

        resp = client.get(DOWNLOAD_URL.format(form_id=form.id), headers=admin_headers)
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert 'filename="Club Survey - Responses.csv"' in resp.headers["content-disposition"]

        rows = list(csv.reader(io.StringIO(resp.text)))
        assert rows[0] == ["Respondent Name", "Respondent ID", "Submitted At", "Year of study", "Clubs", "Comment"]
        assert rows[1] == ["Ana Diaz", "S-1", "2026-04-02T08:15:00", "3", "Chess, Choir", "Fun, mostly"]

    def test_download_requires_admin(self, client: TestClient, db, admin, student_headers):
        form = _create_form(db, admin)
        resp = client.get(DOWNLOAD_URL.format(form_id=form.id), headers=student_headers)
        assert resp.status_code == 403

    def test_summary_respects_token_owner(self, client: TestClient, db, admin):
        form = _create_form(db, admin)
        student = _create_student(db, "a@example.com")
        resp = client.get(
            SUMMARY_URL.format(form_id=form.id),
            headers={"Authorization": f"Bearer {create_access_token(student.id)}"},
        )
        assert resp.status_code == 403
