"""Tests for the SpaceMars client: endpoints, auth, and envelope handling."""

from __future__ import annotations

import json

import httpx
import pytest
from conftest import RecordingTransport, json_responder

from prometheus_mars.marketplace import SpaceMarsClient


def _client(handler, api_key: str = "mars_key") -> tuple[SpaceMarsClient, RecordingTransport]:
    transport = RecordingTransport(handler)
    client = SpaceMarsClient(
        "https://spacemars.test/", api_key, http_client=httpx.AsyncClient(transport=transport),
    )
    return client, transport


_TASK = {
    "id": "t1",
    "title": "Survey crater",
    "description": "Map Jezero",
    "difficulty": "beginner",
    "missionSlug": "perseverance",
    "rewardMars": 10,
    "tags": ["mapping"],
}


class TestEndpoints:
    @pytest.mark.asyncio
    async def test_available_tasks(self):
        client, transport = _client(json_responder({"success": True, "data": [_TASK]}))

        response = await client.get_available_tasks(5)

        request = transport.requests[0]
        assert request.method == "GET"
        assert str(request.url) == "https://spacemars.test/api/v1/tasks/available?limit=5"
        assert request.headers["authorization"] == "Bearer mars_key"
        assert response.success
        task = response.data[0]
        assert task.mission_slug == "perseverance"
        assert task.reward_mars == 10
        assert task.tags == ["mapping"]

    @pytest.mark.asyncio
    async def test_claim_and_submit(self):
        client, transport = _client(json_responder({"success": True, "data": {"taskId": "t1", "status": "ok"}}))

        claim = await client.claim_task("t1")
        submit = await client.submit_result("t1", "the answer")

        assert claim.success and submit.success
        assert transport.requests[0].url.path == "/api/v1/tasks/t1/claim"
        assert transport.requests[1].url.path == "/api/v1/tasks/t1/submit"
        assert transport.last_json() == {"content": "the answer"}
        assert submit.data.status == "ok"

    @pytest.mark.asyncio
    async def test_register_without_key_sends_no_auth(self):
        client, transport = _client(json_responder({
            "success": True,
            "data": {
                "id": "a1", "name": "Ares", "api_key": "mars_new", "claim_url": "https://spacemars.test/claim/x",
                "first_task": {"id": "t0", "title": "Hello Mars", "difficulty": "beginner", "reward_mars": 5},
            },
        }), api_key="")

        response = await client.register("Ares", "test agent", ["coding"])

        request = transport.requests[0]
        assert "authorization" not in request.headers
        assert transport.last_json() == {"name": "Ares", "description": "test agent", "skills": ["coding"]}
        assert response.data.api_key == "mars_new"
        assert response.data.first_task.title == "Hello Mars"

    @pytest.mark.asyncio
    async def test_create_post_mission_optional(self):
        client, transport = _client(json_responder({"success": True, "data": {"id": "p1", "title": "Hi"}}))

        await client.create_post("Hi", "body")
        await client.create_post("Hi", "body", mission_id="m1")

        assert transport.requests[0].url.path == "/api/v1/posts"
        assert "missionId" not in json.loads(transport.requests[0].content)
        assert transport.last_json()["missionId"] == "m1"

    @pytest.mark.asyncio
    async def test_heartbeat_and_profile(self):
        def _handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/v1/heartbeat":
                return httpx.Response(200, json={"success": True, "data": {
                    "agent": {"id": "a1", "name": "Ares", "status": "active", "karma": 3},
                    "tasks": {"available": [], "open_count": 4, "total_count": 9},
                    "next_heartbeat_seconds": 1800,
                }})
            return httpx.Response(200, json={"success": True, "data": {
                "id": "a1", "name": "Ares", "karma": 3, "createdAt": "2026-01-01",
            }})

        client, _ = _client(_handler)

        beat = await client.heartbeat()
        profile = await client.get_profile()

        assert beat.data.tasks.open_count == 4
        assert beat.data.next_heartbeat_seconds == 1800
        assert profile.data.name == "Ares"
        assert profile.data.created_at == "2026-01-01"


class TestEnvelope:
    @pytest.mark.asyncio
    async def test_error_status_with_json_error(self):
        client, _ = _client(json_responder({"success": False, "error": "Task already claimed"}, 409))

        response = await client.claim_task("t1")

        assert not response.success
        assert response.error == "Task already claimed"

    @pytest.mark.asyncio
    async def test_error_status_without_error_field(self):
        client, _ = _client(json_responder({"success": True}, 500))

        response = await client.claim_task("t1")

        assert not response.success
        assert response.error == "HTTP 500"

    @pytest.mark.asyncio
    async def test_non_json_error_body_wrapped(self):
        client, _ = _client(lambda r: httpx.Response(502, text="Bad Gateway"))

        response = await client.get_available_tasks()

        assert not response.success
        assert response.error == "HTTP 502: Bad Gateway"

    @pytest.mark.asyncio
    async def test_structured_error_is_stringified(self):
        client, _ = _client(json_responder(
            {"success": False, "error": {"code": "RATE_LIMITED"}, "message": ["slow down"]}, 429,
        ))

        response = await client.heartbeat()

        assert not response.success
        assert json.loads(response.error) == {"code": "RATE_LIMITED"}
        assert response.message == '["slow down"]'

    @pytest.mark.asyncio
    async def test_unexpected_payload_shape(self):
        client, _ = _client(json_responder({"success": True, "data": {"not": "a list"}}))

        response = await client.get_available_tasks()

        assert not response.success
        assert "Expected a list" in response.error

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        def _refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client, _ = _client(_refuse)

        with pytest.raises(httpx.ConnectError):
            await client.heartbeat()
