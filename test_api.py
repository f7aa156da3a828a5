import base64
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from action_executor import ActionResult
from api import create_api
from config import Settings
from errors import IntentParseError, StorageError
from event_store import new_event
from intent_resolver import AddEventData, Intent, IntentAction
from voice_calendar_assistant import CalendarInteractionResult

EVENT = new_event("Meeting with John", "2026-10-19", "15:00", "en")
INTENT = Intent(
    action=IntentAction.ADD_EVENT,
    language="en",
    data=AddEventData(title="Meeting with John", date="2026-10-19", time="15:00"),
    response="I've scheduled a meeting with John for tomorrow at 3 PM.",
)


def interaction(transcription):
    return CalendarInteractionResult(
        transcription=transcription,
        response_text=INTENT.response,
        audio=b"mp3",
        intent=INTENT,
        events=[EVENT],
    )


@pytest.fixture
def assistant():
    fake = Mock()
    fake.handle_text = AsyncMock(side_effect=lambda text: interaction(text))
    fake.handle_audio = AsyncMock(return_value=interaction("Schedule a meeting with John tomorrow at 3 PM"))
    fake.list_events = Mock(return_value=[EVENT])
    fake.delete_event = AsyncMock(return_value=ActionResult(events=[], message="Event deleted successfully", deleted=1))
    return fake


@pytest.fixture
def client(assistant):
    settings = Settings(openai_api_key="sk-test", deepgram_api_key=None)
    return TestClient(create_api(assistant, settings))


def test_text_input_returns_full_payload(client, assistant):
    response = client.post("/api/text", json={"text": "Schedule a meeting with John tomorrow at 3 PM"})

    assert response.status_code == 200
    body = response.json()
    assert body["transcription"] == "Schedule a meeting with John tomorrow at 3 PM"
    assert body["response"] == INTENT.response
    assert base64.b64decode(body["audio"]) == b"mp3"
    assert body["events"] == [EVENT.to_dict()]
    assert body["intent"]["data"] == {"title": "Meeting with John", "date": "2026-10-19", "time": "15:00"}
    assistant.handle_text.assert_awaited_once_with("Schedule a meeting with John tomorrow at 3 PM")


@pytest.mark.parametrize("payload", [{}, {"text": ""}, {"text": "   "}, {"text": 123}, {"text": ["hello"]}])
def test_text_input_requires_text(client, payload):
    response = client.post("/api/text", json=payload)
    assert response.status_code == 400
    assert response.json() == {"error": "No text provided"}


def test_text_input_pipeline_failure(client, assistant):
    assistant.handle_text.side_effect = IntentParseError("Model output is not valid JSON")

    response = client.post("/api/text", json={"text": "hello"})

    assert response.status_code == 500
    assert response.json() == {
        "error": "Failed to process text input",
        "details": "Model output is not valid JSON",
    }


def test_voice_input(client, assistant):
    response = client.post("/api/voice", files={"audio": ("audio.webm", b"fake-audio", "audio/webm")})

    assert response.status_code == 200
    assert response.json()["transcription"] == "Schedule a meeting with John tomorrow at 3 PM"
    assistant.handle_audio.assert_awaited_once_with(b"fake-audio", "audio/webm")


def test_voice_input_requires_audio(client):
    response = client.post("/api/voice")
    assert response.status_code == 400
    assert response.json() == {"error": "No audio file provided"}


def test_voice_input_pipeline_failure(client, assistant):
    assistant.handle_audio.side_effect = StorageError("disk full")

    response = client.post("/api/voice", files={"audio": ("audio.webm", b"fake-audio", "audio/webm")})

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to process voice input"
    assert response.json()["details"] == "disk full"


def test_list_events(client):
    response = client.get("/api/events")
    assert response.status_code == 200
    assert response.json() == {"events": [EVENT.to_dict()]}


def test_list_events_storage_failure(client, assistant):
    assistant.list_events.side_effect = StorageError("corrupt calendar")

    response = client.get("/api/events")

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to load events", "details": "corrupt calendar"}


def test_health_reports_configured_services(client):
    body = client.get("/api/health").json()
    assert body["status"] == "ok"
    assert body["openaiConfigured"] is True
    assert body["deepgramConfigured"] is False
    assert "timestamp" in body


def test_text_input_rejects_non_json_body(client, assistant):
    response = client.post("/api/text", content=b"not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json() == {"error": "No text provided"}
    assistant.handle_text.assert_not_awaited()


def test_delete_event_by_id(client, assistant):
    response = client.delete(f"/api/events/{EVENT.id}")

    assert response.status_code == 200
    assert response.json() == {"message": "Event deleted successfully", "events": []}
    assistant.delete_event.assert_awaited_once_with(EVENT.id)


def test_delete_unknown_event(client, assistant):
    assistant.delete_event.return_value = ActionResult(events=[EVENT], message="I couldn't find that event.")

    response = client.delete("/api/events/no-such-id")

    assert response.status_code == 404
    assert response.json() == {"error": "Event not found"}


def test_delete_event_storage_failure(client, assistant):
    assistant.delete_event.side_effect = StorageError("disk full")

    response = client.delete(f"/api/events/{EVENT.id}")

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to delete event", "details": "disk full"}
