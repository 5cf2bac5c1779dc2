"""Tests for the HTTP routes."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from neoclip.config import Settings, get_settings
from neoclip.models.shared import GenerationStatus
from neoclip.server.main import app
from neoclip.services.generation_service import get_generation_service
from neoclip.services.user_service import UserService, get_user_service
from neoclip.services.video.common import (
    ProviderNotConfiguredError,
    ProviderPollResult,
    ProviderUnavailableError,
)


@pytest.fixture
def client(service, ledger, store, clock):
    user_service = UserService(ledger, store, clock=clock)
    app.dependency_overrides[get_generation_service] = lambda: service
    app.dependency_overrides[get_user_service] = lambda: user_service
    app.dependency_overrides[get_settings] = lambda: Settings(storage_backend="memory")
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client, device_id="device-1"):
    response = client.post("/users/register", json={"deviceId": device_id})
    assert response.status_code == 200
    return response.json()["user"]["user_id"]


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"message": "success"}


class TestUserRoutes:
    """Tests for /users routes."""

    def test_register_and_get_user(self, client):
        user_id = register(client)

        response = client.get(f"/users/{user_id}")

        assert response.status_code == 200
        assert response.json()["device_id"] == "device-1"

    def test_register_requires_identifier(self, client):
        response = client.post("/users/register", json={})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "Either device_id or email is required"

    def test_unknown_user(self, client):
        assert client.get("/users/nobody").status_code == 404
        assert client.get("/users/nobody/status").status_code == 404

    def test_update_user(self, client):
        user_id = register(client)

        response = client.patch(
            f"/users/{user_id}", json={"displayName": "Ana", "tier": "paid"}
        )

        assert response.status_code == 200
        assert response.json()["display_name"] == "Ana"
        assert response.json()["tier"] == "paid"

    def test_update_user_without_valid_fields(self, client):
        user_id = register(client)

        response = client.patch(f"/users/{user_id}", json={"nickname": "ana"})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "No valid update fields provided"

    def test_update_user_invalid_tier(self, client):
        user_id = register(client)

        response = client.patch(f"/users/{user_id}", json={"tier": "platinum"})

        assert response.status_code == 400

    def test_update_unknown_user(self, client):
        response = client.patch("/users/nobody", json={"tier": "paid"})

        assert response.status_code == 404

    def test_status(self, client):
        user_id = register(client)
        client.post("/generation/submit", json={"prompt": "cat", "user_id": user_id})

        response = client.get(f"/users/{user_id}/status")

        assert response.status_code == 200
        body = response.json()
        assert body["free_used"] == 1
        assert body["free_remaining"] == 9
        assert len(body["generations"]) == 1


class TestGenerationRoutes:
    """Tests for /generation routes."""

    def test_submit_and_poll_to_completion(self, client, adapters):
        user_id = register(client)

        submitted = client.post(
            "/generation/submit",
            json={"prompt": "cat playing piano", "user_id": user_id, "length": 10},
        )
        assert submitted.status_code == 200
        body = submitted.json()
        assert body["status"] == "processing"
        assert body["provider_name"] == "Wan-2.1"
        assert body["remaining_free"] == 9

        adapters["wan"].poll_status.return_value = ProviderPollResult(
            status=GenerationStatus.PROCESSING, progress=45
        )
        polled = client.get(body["poll_url"])
        assert polled.status_code == 200
        assert polled.json()["status"] == "processing"
        assert polled.json()["progress"] == 45

        adapters["wan"].poll_status.return_value = ProviderPollResult(
            status=GenerationStatus.COMPLETED, progress=100, video_url="https://cdn/v.mp4"
        )
        completed = client.get(body["poll_url"])
        assert completed.json()["status"] == "completed"
        assert completed.json()["video_url"] == "https://cdn/v.mp4"

    def test_submit_invalid_input(self, client):
        user_id = register(client)

        response = client.post("/generation/submit", json={"prompt": "", "user_id": user_id})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "Prompt is required"

    @pytest.mark.parametrize(
        "payload",
        [{"prompt": "cat", "length": "ten"}, {"prompt": 123}],
    )
    def test_submit_mistyped_fields(self, client, payload):
        payload["user_id"] = register(client)

        response = client.post("/generation/submit", json=payload)

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "Invalid request"

    def test_quota_exceeded(self, client, service):
        service.ledger.policy = service.ledger.policy.model_copy(
            update={"free_monthly_limit": 1}
        )
        user_id = register(client)
        payload = {"prompt": "cat", "user_id": user_id}

        assert client.post("/generation/submit", json=payload).status_code == 200
        response = client.post("/generation/submit", json=payload)

        assert response.status_code == 402
        assert response.json()["detail"]["limit"] == 1

    def test_all_providers_failed(self, client, adapters):
        user_id = register(client)
        adapters["wan"].submit.side_effect = ProviderUnavailableError("wan", "wan down")
        adapters["luma"].submit.side_effect = ProviderUnavailableError("luma", "luma down")

        response = client.post("/generation/submit", json={"prompt": "cat", "user_id": user_id})

        assert response.status_code == 500
        assert len(response.json()["detail"]["attempts"]) == 2

    def test_poll_unknown_generation(self, client):
        response = client.get("/generation/poll/missing")

        assert response.status_code == 404
        assert response.json()["detail"]["generation_id"] == "missing"

    def test_unexpected_error_is_500(self, client):
        broken = MagicMock()
        broken.submit = AsyncMock(side_effect=RuntimeError("boom"))
        app.dependency_overrides[get_generation_service] = lambda: broken

        response = client.post("/generation/submit", json={"prompt": "cat", "user_id": "u"})

        assert response.status_code == 500
        assert "boom" in response.json()["detail"]["error"]


def test_debug_providers(client):
    response = client.get("/debug/providers")

    assert response.status_code == 200
    body = response.json()
    assert body["storage_backend"] == "memory"
    assert set(body["providers"]) == {"wan", "luma", "fal"}
    assert body["fallback_chains"]["free"] == ["Wan-2.1 ($0.0008)", "Luma ($0.2)"]


class TestProviderCheck:
    """Tests for /debug/providers/{provider_key}/test."""

    def test_sends_default_prompt(self, client, adapters):
        adapters["wan"].check_connection.return_value = {
            "provider": "wan",
            "test": "create_task",
            "success": True,
            "status": 201,
        }

        response = client.post("/debug/providers/wan/test")

        assert response.status_code == 200
        assert response.json()["success"] is True
        adapters["wan"].check_connection.assert_called_once_with(
            "A beautiful sunset over mountains"
        )

    def test_custom_prompt(self, client, adapters):
        adapters["fal"].check_connection.return_value = {"provider": "fal"}

        client.post("/debug/providers/fal/test", json={"prompt": "a red fox"})

        adapters["fal"].check_connection.assert_called_once_with("a red fox")

    def test_unknown_provider(self, client):
        response = client.post("/debug/providers/sora/test")

        assert response.status_code == 400
        assert response.json()["detail"]["providers"] == ["fal", "luma", "wan"]

    def test_unconfigured_provider(self, client, adapters):
        adapters["luma"].check_connection.side_effect = ProviderNotConfiguredError(
            "luma", "No API key for Luma"
        )

        response = client.post("/debug/providers/luma/test")

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "No API key for Luma"

    def test_network_failure(self, client, adapters):
        adapters["wan"].check_connection.side_effect = ProviderUnavailableError(
            "wan", "Wan-2.1: Request timeout after 60.0s"
        )

        response = client.post("/debug/providers/wan/test")

        assert response.status_code == 500
        assert response.json()["detail"]["provider"] == "wan"
