"""
Tests for project CRUD, saved artifacts and the account endpoints
(usage, subscription, onboarding, events).
"""

import pytest

from mindforge.services.project_service import project_service
from mindforge.services.usage_gate import usage_gate

MINDMAP = {
    "projectName": "PlantPal",
    "projectDescription": "Reminds you to water plants",
    "features": [{"id": "f1", "title": "Reminders"}],
}


@pytest.fixture
def saved(client):
    """Save a mindmap through the API; returns (project_id, mindmap_id)."""
    response = client.post("/api/save-mindmap", json={"mindmap": MINDMAP, "idea": "water my plants please"})
    assert response.status_code == 200
    body = response.json()
    return body["projectId"], body["mindmapId"]


class TestProjects:
    def test_save_mindmap_creates_project(self, client, saved):
        project_id, _ = saved
        projects = client.get("/api/projects").json()["projects"]

        assert [p["id"] for p in projects] == [project_id]
        assert projects[0]["name"] == "PlantPal"
        assert projects[0]["description"] == "Reminds you to water plants"

    def test_open_returns_latest_mindmap(self, client, saved):
        project_id, mindmap_id = saved
        project = client.get(f"/api/projects/{project_id}").json()["project"]

        assert project["mindmap"] == {"id": mindmap_id, "data": MINDMAP}

    def test_update(self, client, saved):
        project_id, _ = saved
        response = client.patch(f"/api/projects/{project_id}", json={"name": "Renamed", "status": "archived"})

        assert response.status_code == 200
        assert response.json()["project"]["name"] == "Renamed"
        assert response.json()["project"]["status"] == "archived"

    def test_duplicate_copies_mindmap(self, client, saved):
        project_id, _ = saved
        copy = client.post(f"/api/projects/{project_id}/duplicate").json()["project"]

        assert copy["name"] == "PlantPal (Copy)"
        assert copy["id"] != project_id
        opened = client.get(f"/api/projects/{copy['id']}").json()["project"]
        assert opened["mindmap"]["data"] == MINDMAP

    def test_delete_cascades(self, client, saved, db):
        project_id, mindmap_id = saved
        project_service.upsert_feature_prd(db, "user_test", mindmap_id, "f1", "Reminders", {"overview": "o"})

        assert client.delete(f"/api/projects/{project_id}").status_code == 200
        assert client.get(f"/api/projects/{project_id}").status_code == 404
        missing = client.get("/api/feature-prd", params={"mindmapId": mindmap_id, "featureId": "f1"})
        assert missing.status_code == 404

    def test_other_users_project_is_404(self, client, saved, current_user):
        project_id, _ = saved
        current_user["user_id"] = "user_other"

        response = client.get(f"/api/projects/{project_id}")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "MF-API-001"
        assert client.get("/api/projects").json()["projects"] == []

    def test_saving_does_not_spend_quota(self, client, saved):
        assert usage_gate.peek("user_test").units_consumed == 0


class TestSavedArtifacts:
    def test_save_prd_versions(self, client, saved):
        project_id, _ = saved
        first = client.post("/api/save-prd", json={"projectId": project_id, "content": {"overview": "v1"}}).json()
        second = client.post("/api/save-prd", json={"projectId": project_id, "content": {"overview": "v2"}}).json()

        assert first["data"]["version"] == 1
        assert second["data"]["version"] == 2
        assert second["data"]["status"] == "draft"

    def test_save_prd_unknown_project_404(self, client):
        response = client.post("/api/save-prd", json={"projectId": "nope", "content": {}})
        assert response.status_code == 404

    def test_feature_code_roundtrip(self, client, saved, db):
        _, mindmap_id = saved
        project_service.upsert_feature_code(db, "user_test", mindmap_id, "f1", "Reminders", {"files": []})

        response = client.get("/api/feature-code", params={"mindmapId": mindmap_id, "featureId": "f1"})

        assert response.status_code == 200
        assert response.json()["code"] == {"files": []}
        assert response.json()["featureName"] == "Reminders"

    def test_decision_path_save_and_update(self, client):
        payload = {"sessionId": "sess-9", "decisions": {"q1": "web"}, "currentStep": 1, "totalSteps": 4}
        first = client.post("/api/decision-tree/save", json=payload).json()
        payload.update(decisions={"q1": "web", "q2": "b2b"}, currentStep=4, completed=True)
        second = client.post("/api/decision-tree/save", json=payload).json()

        assert first["id"] == second["id"]
        assert second["completed"] is True

    def test_decision_path_of_other_user_404(self, client, current_user):
        client.post("/api/decision-tree/save", json={"sessionId": "sess-x", "decisions": {}})
        current_user["user_id"] = "user_other"

        response = client.post("/api/decision-tree/save", json={"sessionId": "sess-x", "decisions": {}})
        assert response.status_code == 404


class TestAccount:
    def test_usage_free_user(self, client):
        usage_gate.check_and_reserve("user_test", limit=3)

        body = client.get("/api/usage").json()

        assert body["mindmapsCreated"] == 1
        assert body["limit"] == 3
        assert body["remaining"] == 2
        assert body["isProUser"] is False
        assert body["monthly"]["prdCount"] == 0

    def test_usage_pro_user(self, client, make_user):
        make_user("user_test", subscribed=True)

        body = client.get("/api/usage").json()

        assert body["isProUser"] is True
        assert body["limit"] is None
        assert body["remaining"] is None

    def test_subscription_info(self, client, make_user):
        assert client.get("/api/subscription").json()["isSubscribed"] is False
        make_user("user_test", subscribed=True)
        info = client.get("/api/subscription").json()
        assert info["status"] == "active"
        assert info["plan"] == "monthly"

    def test_onboarding_flag(self, client):
        assert client.get("/api/onboarding/status").json() == {"completed": False, "onboardingCompleted": False}
        assert client.post("/api/onboarding/complete").json() == {"success": True}
        assert client.get("/api/onboarding/status").json() == {"completed": True, "onboardingCompleted": True}

    def test_onboarding_inferred_from_projects(self, client, saved):
        status = client.get("/api/onboarding/status").json()
        assert status["completed"] is True
        assert status["onboardingCompleted"] is False

    def test_track_event(self, client):
        response = client.post("/api/events/track", json={"eventName": "pricing_viewed", "page": "/pricing"})
        assert response.status_code == 200
        assert response.json()["id"]
