from pathlib import Path

import gradio as gr
import pytest

import app
from app import build_interface, delete_selected_event, event_choices, events_to_rows
from config import Settings
from event_store import JsonEventStore, new_event
from intent_resolver import Intent, IntentAction, ListEventsData
from speech_services import DeepgramSynthesizer
from voice_calendar_assistant import CalendarInteractionResult, VoiceCalendarAssistant


def list_result(language, response):
    return CalendarInteractionResult(
        transcription="what do I have today",
        response_text=response,
        audio=b"mp3",
        intent=Intent(
            action=IntentAction.LIST_EVENTS,
            language=language,
            data=ListEventsData(),
            response=response,
        ),
    )


@pytest.fixture
def output_dir(tmp_path, monkeypatch):
    directory = tmp_path / "audio"
    monkeypatch.setattr(app, "OUTPUT_DIR", directory)
    return directory


@pytest.fixture
def assistant(tmp_path):
    return VoiceCalendarAssistant.from_settings(Settings(event_store=str(tmp_path / "calendar.json")))


def test_events_to_rows_sorts_and_filters():
    events = [
        new_event("Dinner", "2026-10-19", "18:00", "en"),
        new_event("मीटिंग", "2026-10-19", "09:00", "hi"),
        new_event("Review", "2026-10-20", "11:00", "en"),
    ]

    assert events_to_rows(events) == [
        ["2026-10-19", "09:00", "मीटिंग", "hi"],
        ["2026-10-19", "18:00", "Dinner", "en"],
        ["2026-10-20", "11:00", "Review", "en"],
    ]
    assert events_to_rows(events, " 2026-10-20 ") == [["2026-10-20", "11:00", "Review", "en"]]


def test_event_choices_label_events_and_carry_ids():
    later = new_event("Dinner", "2026-10-19", "18:00", "en")
    earlier = new_event("Standup", "2026-10-19", "09:00", "en")

    assert event_choices([later, earlier]) == [
        ("2026-10-19 09:00 - Standup", earlier.id),
        ("2026-10-19 18:00 - Dinner", later.id),
    ]


def test_english_reply_plays_synthesized_audio(output_dir):
    rendered = app._render(list_result("en", "You have no events."), DeepgramSynthesizer(api_key="dg-key"))

    audio_path, local_speech = rendered[2], rendered[6]
    assert audio_path is not None
    assert Path(audio_path).read_bytes() == b"mp3"
    assert local_speech == ""


def test_hindi_reply_is_spoken_locally_instead_of_english_voice(output_dir):
    rendered = app._render(list_result("hi", "आज की आपकी मीटिंग्स:"), DeepgramSynthesizer(api_key="dg-key"))

    assert rendered[1] == "आज की आपकी मीटिंग्स:"
    assert rendered[2] is None
    assert rendered[6] == "आज की आपकी मीटिंग्स:"
    assert not output_dir.exists()


def test_saved_replies_are_capped(output_dir, monkeypatch):
    monkeypatch.setattr(app, "MAX_SAVED_REPLIES", 2)

    output_dir.mkdir(parents=True)
    for stamp in ("20250101000000000001", "20250101000000000002", "20250101000000000003"):
        (output_dir / f"assistant_{stamp}.mp3").write_bytes(b"old")

    latest = app._save_audio(b"new")

    remaining = sorted(path.name for path in output_dir.glob("assistant_*.mp3"))
    assert remaining == ["assistant_20250101000000000003.mp3", Path(latest).name]


@pytest.mark.asyncio
async def test_delete_selected_event_requires_confirmation(assistant):
    event = new_event("Standup", "2026-10-19", "09:00", "en")
    assistant.store.save([event])

    rows, status, _, confirmed = await delete_selected_event(assistant, event.id, False)

    assert rows == [["2026-10-19", "09:00", "Standup", "en"]]
    assert status == "Tick the confirmation box to delete."
    assert confirmed is False
    assert assistant.store.load() == [event]


@pytest.mark.asyncio
async def test_delete_selected_event_removes_only_that_event(assistant):
    morning = new_event("Standup", "2026-10-19", "09:00", "en")
    evening = new_event("Standup", "2026-10-19", "18:00", "en")
    assistant.store.save([morning, evening])

    rows, status, _, _ = await delete_selected_event(assistant, morning.id, True)

    assert rows == [["2026-10-19", "18:00", "Standup", "en"]]
    assert status == "Event deleted successfully"
    assert assistant.store.load() == [evening]


@pytest.mark.asyncio
async def test_delete_without_selection(assistant):
    _, status, _, _ = await delete_selected_event(assistant, None, True)
    assert status == "Select an event to delete."


def test_build_interface(assistant):
    assert isinstance(assistant.store, JsonEventStore)
    assert isinstance(build_interface(assistant), gr.Blocks)
