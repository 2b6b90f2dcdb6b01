"""
HTTP layer tests.

Drives the FastAPI app in-process through httpx's ASGI transport. The
transport does not run the lifespan, so the container fixture (already
initialized against the scratch database) is injected directly.
"""

import httpx
import pytest
import pytest_asyncio

from smilequest.api.app import create_app

pytestmark = pytest.mark.unit

WEAR = "/v1/patients/{patient}/aligners/{aligner}/wear"


@pytest_asyncio.fixture
async def client(container, seeded):
    app = create_app(container, configure_logging=False)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://smilequest.test") as http:
        yield http


def wear_url(action, patient="p-1", aligner="al-1"):
    return WEAR.format(patient=patient, aligner=aligner) + "/" + action


class TestWearEndpoints:
    async def test_status(self, client):
        """Status answers with the full wear snapshot."""
        response = await client.get(wear_url("status"))

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "wearing"
        assert len(body["weekly"]) == 7
        assert body["celebration"] is None

    async def test_pause_then_resume(self, client):
        """Pause and resume flip the reported state."""
        paused = await client.post(wear_url("pause"), json={"actor_id": "kid-1"})
        resumed = await client.post(wear_url("resume"), json={"actor_id": "kid-1"})

        assert paused.status_code == 200
        assert paused.json()["state"] == "paused"
        assert resumed.json()["state"] == "wearing"

    async def test_checkin(self, client):
        """A dated check-in records a caregiver day."""
        response = await client.post(
            wear_url("checkin"), json={"actor_id": "parent-1", "date": "2025-03-09", "wore_aligner": True}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["daily"]["date"] == "2025-03-09"
        assert body["daily"]["source"] == "parent_checkin"
        assert body["celebration"] is None

    async def test_checkin_without_date_uses_today(self, client):
        """Omitting the date checks in for the current UTC day."""
        response = await client.post(wear_url("checkin"), json={"wore_aligner": True})

        assert response.status_code == 200
        assert response.json()["daily"]["date"] == "2025-03-10"


class TestErrorBodies:
    async def test_unknown_aligner_is_404(self, client):
        """Unknown aligners map to a non-retryable 404."""
        response = await client.get(wear_url("status", aligner="al-missing"))

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["error_code"] == "ALIGNER_NOT_FOUND"
        assert error["is_retryable"] is False

    async def test_foreign_aligner_is_403(self, client):
        """Another patient's aligner is forbidden."""
        response = await client.post(wear_url("pause", aligner="al-other"), json={})

        assert response.status_code == 403
        assert response.json()["error"]["error_code"] == "PERMISSION_DENIED"

    async def test_malformed_date_is_400(self, client):
        """A date that is not ISO formatted fails validation."""
        response = await client.post(wear_url("checkin"), json={"date": "09/03/2025", "wore_aligner": True})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["error_code"] == "VALIDATION_DATE"
        assert error["error_type"] == "ValidationError"

    async def test_future_date_is_400(self, client):
        """Future check-in dates are rejected on the date field."""
        response = await client.post(wear_url("checkin"), json={"date": "2025-03-11", "wore_aligner": True})

        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "date"

    async def test_missing_field_is_400(self, client):
        """Missing body fields surface as a ValidationError."""
        response = await client.post(wear_url("checkin"), json={"date": "2025-03-09"})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["error_type"] == "ValidationError"
        assert error["details"]["field"] == "wore_aligner"


class TestQuestEndpoints:
    async def test_quest_flow(self, client):
        """Photo set, lessons and finalize drive the quest over HTTP."""
        photo = await client.post("/v1/internal/aligners/al-1/quest/photo-set", json={"patient_id": "p-1"})
        lessons = await client.post("/v1/internal/aligners/al-1/quest/lessons", json={"patient_id": "p-1"})
        finalized = await client.post("/v1/internal/aligners/al-1/quest/finalize")

        assert photo.json()["photo_set_done"] is True
        assert lessons.json()["lessons_done"] == 1
        assert finalized.status_code == 200
        assert finalized.json()["quest"]["status"] == "failed"
        assert finalized.json()["awarded"] is False

    async def test_quest_status(self, client):
        """Quest status reports the active quest and adherence."""
        response = await client.get("/v1/patients/p-1/aligners/al-1/quest")

        assert response.status_code == 200
        assert response.json()["quest"]["status"] == "active"
        assert response.json()["adherence_percent_to_date"] == 0

    async def test_finalize_unknown_aligner(self, client):
        """Finalizing an unknown aligner is a 404."""
        response = await client.post("/v1/internal/aligners/al-missing/quest/finalize")

        assert response.status_code == 404


class TestHealth:
    async def test_health(self, client):
        """Health reports the database as reachable."""
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"] is True
        assert response.json()["status"] == "ok"

    async def test_correlation_id_is_echoed(self, client):
        """The correlation header is echoed back."""
        response = await client.get("/health", headers={"X-Correlation-ID": "corr-123"})

        assert response.headers["X-Correlation-ID"] == "corr-123"
