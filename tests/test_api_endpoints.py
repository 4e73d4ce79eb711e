"""
Tests for API endpoints
"""

from importlib import metadata
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.api.v1.deps import (
    get_analytics,
    get_question_service,
    get_quota_service,
    get_user_service,
)
from app.core.database import get_db
from app.core.firebase import identity_from_claims
from app.core.middleware import get_current_user
from app.main import app, get_version
from app.models.user import AccountStatus
from app.services.generation_service import AnswerGenerator
from app.services.question_service import QuestionService
from app.services.quota_service import QuotaService
from app.services.user_service import UserService

QUESTION_BODY = {
    "subject": "Mathematics",
    "gradeLevel": "6ème",
    "questionText": "How do I add two fractions?",
}


@pytest.fixture
def caller():
    """Identity returned by the auth dependency; tests may edit it"""
    return {"uid": "student-1", "email": "student@example.com", "name": "Test Student", "role": None, "token": {}}


@pytest.fixture
def quota_service(analytics, fixed_clock):
    return QuotaService(analytics=analytics, clock=fixed_clock)


@pytest.fixture
def client(db_session, analytics, quota_service, caller):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: caller
    app.dependency_overrides[get_analytics] = lambda: analytics
    app.dependency_overrides[get_quota_service] = lambda: quota_service
    app.dependency_overrides[get_user_service] = lambda: UserService(analytics=analytics, quota_service=quota_service)
    app.dependency_overrides[get_question_service] = lambda: QuestionService(
        analytics=analytics,
        quota_service=quota_service,
        generator=AnswerGenerator(analytics=analytics, api_key=""),
    )

    # No context manager: lifespan (Firebase, create_all) stays out of the way
    yield TestClient(app)

    app.dependency_overrides.clear()


class TestHealthEndpoint:
    """Test health check endpoint"""

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_version_comes_from_package_metadata(self):
        with patch("app.main.metadata.version", return_value="2.3.4") as version:
            assert get_version() == "2.3.4"
        version.assert_called_once_with("schoolai-backend")

    def test_version_when_not_installed(self):
        with patch("app.main.metadata.version", side_effect=metadata.PackageNotFoundError("schoolai-backend")):
            assert get_version() == "0.0.0"


class TestAuthentication:

    def test_missing_token_is_rejected(self, db_session):
        app.dependency_overrides[get_db] = lambda: db_session
        try:
            response = TestClient(app).get("/api/v1/questions/quota/status")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code in (401, 403)

    def test_inactive_account_is_forbidden(self, client, make_user):
        make_user(user_id="student-1", email="student@example.com", account_status=AccountStatus.BLOCKED)

        response = client.get("/api/v1/questions/quota/status")

        assert response.status_code == 403
        assert response.json()['code'] == 'ACCOUNT_INACTIVE'

    def test_email_verified_claim_must_be_true(self):
        assert identity_from_claims({'uid': 'u', 'email': 'a@b.c'})['email_verified'] is False
        assert identity_from_claims({'uid': 'u', 'email_verified': 'true'})['email_verified'] is False
        assert identity_from_claims({'uid': 'u', 'email_verified': True})['email_verified'] is True

    def test_unverified_email_of_another_account_is_rejected(self, client, make_user):
        make_user(user_id="admin-uid", email="student@example.com", role="admin")

        response = client.get("/api/v1/users/me")

        assert response.status_code == 409
        assert response.json()['code'] == 'EMAIL_IN_USE'

    def test_verified_email_links_account(self, client, make_user, caller):
        make_user(user_id="created-by-admin", email="student@example.com")
        caller.update(email_verified=True)

        response = client.get("/api/v1/users/me")

        assert response.status_code == 200
        assert response.json()['id'] == 'created-by-admin'

    def test_first_request_creates_account(self, client, db_session):
        response = client.get("/api/v1/users/me")

        assert response.status_code == 200
        body = response.json()
        assert body['id'] == 'student-1'
        assert body['role'] == 'student'
        assert body['subscription'] is None
        assert body['quota']['limit'] == 20


class TestQuestionEndpoints:

    def test_ask_question(self, client, user):
        response = client.post("/api/v1/questions", json=QUESTION_BODY)

        assert response.status_code == 201
        body = response.json()
        assert body['questionText'] == QUESTION_BODY['questionText']
        assert body['usedFallback'] is True
        assert body['quota'] == {'used': 1, 'limit': 20, 'remaining': 19, 'resetAt': '2026-03-11T00:00:00+00:00'}

    def test_quota_exhausted(self, client, user, db_session, quota_service):
        quota = quota_service.get_or_create_today(db_session, user.id)
        quota.questions_used = 20
        db_session.commit()

        response = client.post("/api/v1/questions", json=QUESTION_BODY)

        assert response.status_code == 429
        assert response.json() == {
            'success': False,
            'error': 'Daily question limit reached (20). Upgrade your plan for more questions.',
            'code': 'QUOTA_EXCEEDED',
            'limit': 20,
        }

    def test_invalid_body(self, client, user):
        response = client.post("/api/v1/questions", json={**QUESTION_BODY, "questionType": "essay"})

        assert response.status_code == 422

    def test_quota_status(self, client, user):
        client.post("/api/v1/questions", json=QUESTION_BODY)

        response = client.get("/api/v1/questions/quota/status")

        assert response.status_code == 200
        assert response.json()['remaining'] == 19

    def test_history_bookmark_and_delete(self, client, user):
        created = client.post("/api/v1/questions", json=QUESTION_BODY).json()

        listed = client.get("/api/v1/questions", params={"subject": "Mathematics"}).json()
        assert listed['pagination']['total'] == 1

        bookmark = client.patch(f"/api/v1/questions/{created['id']}/bookmark")
        assert bookmark.json() == {'id': created['id'], 'isBookmarked': True}

        assert client.delete(f"/api/v1/questions/{created['id']}").status_code == 200
        missing = client.get(f"/api/v1/questions/{created['id']}")
        assert missing.status_code == 404
        assert missing.json()['code'] == 'QUESTION_NOT_FOUND'

    def test_bulk_delete_limit(self, client, user):
        response = client.post("/api/v1/questions/bulk-delete", json={"questionIds": [f"id-{i}" for i in range(51)]})

        assert response.status_code == 422


class TestRevisionSheetEndpoints:

    def test_create_and_download(self, client, user):
        question = client.post("/api/v1/questions", json=QUESTION_BODY).json()

        created = client.post("/api/v1/revision-sheets", json={
            "title": "Fractions",
            "subject": "Mathematics",
            "gradeLevel": "6ème",
            "questionIds": [question['id']],
            "exportFormat": "TXT",
        })
        assert created.status_code == 201

        download = client.get(f"/api/v1/revision-sheets/{created.json()['id']}/download", params={"format": "WORD"})
        assert download.status_code == 200
        body = download.json()
        assert body['filename'] == 'Fractions.docx'
        assert body['content'].startswith("# Fractions")

    def test_unknown_question_ids(self, client, user):
        response = client.post("/api/v1/revision-sheets", json={
            "title": "Fractions",
            "subject": "Mathematics",
            "gradeLevel": "6ème",
            "questionIds": ["nope"],
        })

        assert response.status_code == 400
        assert response.json()['code'] == 'INVALID_QUESTION_IDS'


class TestSubscriptionEndpoints:

    def test_plans_are_public(self, db_session):
        app.dependency_overrides[get_db] = lambda: db_session
        try:
            response = TestClient(app).get("/api/v1/subscriptions/plans")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 200
        assert [p['name'] for p in response.json()['plans']] == ['freemium', 'standard', 'premium', 'pro']

    def test_current_defaults_to_freemium(self, client, user):
        response = client.get("/api/v1/subscriptions/current")

        assert response.status_code == 200
        assert response.json()['isDefault'] is True

    def test_cancel_without_subscription(self, client, user):
        response = client.post("/api/v1/subscriptions/cancel")

        assert response.status_code == 404
        assert response.json()['code'] == 'SUBSCRIPTION_NOT_FOUND'


class TestAdminEndpoints:

    def test_student_is_forbidden(self, client, user):
        response = client.get("/api/v1/admin/users")

        assert response.status_code == 403

    def test_admin_grants_plan_without_rewinding_usage(self, client, make_user, user, plans, db_session, quota_service, caller):
        make_user(user_id="admin-1", email="admin@example.com", role="admin")
        caller.update(uid="admin-1", email="admin@example.com")
        quota = quota_service.get_or_create_today(db_session, user.id)
        quota.questions_used = 20
        db_session.commit()

        granted = client.post(f"/api/v1/admin/users/{user.id}/subscription", json={"plan": "standard"})
        assert granted.status_code == 200
        assert granted.json()['planName'] == 'standard'

        assert client.post(f"/api/v1/admin/users/{user.id}/quota/reset").status_code in (404, 405)
        detail = client.get(f"/api/v1/admin/users/{user.id}").json()
        assert (detail['quota']['used'], detail['quota']['limit']) == (20, 20)

        listed = client.get("/api/v1/admin/users", params={"role": "student"}).json()
        assert listed['users'][0]['planName'] == 'standard'

    def test_admin_manages_accounts(self, client, make_user, caller):
        make_user(user_id="admin-1", email="admin@example.com", role="admin")
        caller.update(uid="admin-1", email="admin@example.com")

        created = client.post("/api/v1/admin/users", json={"email": "pupil@example.com", "name": "New Pupil"})
        assert created.status_code == 201
        user_id = created.json()['id']

        duplicate = client.post("/api/v1/admin/users", json={"email": "pupil@example.com", "name": "Copy"})
        assert duplicate.status_code == 409
        assert duplicate.json()['code'] == 'EMAIL_IN_USE'

        updated = client.put(f"/api/v1/admin/users/{user_id}", json={"name": "Renamed", "accountStatus": "pending"})
        assert updated.json()['name'] == "Renamed"
        assert updated.json()['accountStatus'] == 'pending'

        deleted = client.delete(f"/api/v1/admin/users/{user_id}")
        assert deleted.json() == {"success": True, "id": user_id, "accountStatus": "inactive"}
        detail = client.get(f"/api/v1/admin/users/{user_id}").json()
        assert detail['email'].startswith("deleted_")
        assert detail['email'].endswith(f"_{user_id}@deleted.local")

    def test_admin_cannot_delete_self(self, client, make_user, caller):
        make_user(user_id="admin-1", email="admin@example.com", role="admin")
        caller.update(uid="admin-1", email="admin@example.com")

        response = client.delete("/api/v1/admin/users/admin-1")

        assert response.status_code == 400
        assert response.json()['code'] == 'SELF_DELETE'

    def test_unknown_user(self, client, make_user, caller):
        make_user(user_id="admin-1", email="admin@example.com", role="admin")
        caller.update(uid="admin-1", email="admin@example.com")

        response = client.get("/api/v1/admin/users/ghost")

        assert response.status_code == 404
        assert response.json()['code'] == 'USER_NOT_FOUND'

    def test_admin_blocks_account(self, client, make_user, user, caller):
        make_user(user_id="admin-1", email="admin@example.com", role="admin")
        caller.update(uid="admin-1", email="admin@example.com")

        response = client.patch(f"/api/v1/admin/users/{user.id}/status", json={"accountStatus": "blocked"})

        assert response.status_code == 200
        assert response.json()['accountStatus'] == 'blocked'
