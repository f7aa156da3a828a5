import asyncio
import logging
import mimetypes
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import gradio as gr
import uvicorn
from fastapi import FastAPI
from fastapi.responses import RedirectResponse

from api import create_api
from config import Settings, configure_logging
from errors import AssistantError
from event_store import Event, sort_events
from speech_services import DeepgramSynthesizer
from voice_calendar_assistant import CalendarInteractionResult, VoiceCalendarAssistant

logger = logging.getLogger(__name__)

OUTPUT_DIR = Path("output/audio")
MAX_SAVED_REPLIES = 20
EVENT_HEADERS = ["Date", "Time", "Title", "Language"]

# Replies in a language without a native Deepgram voice are spoken by the browser.
LOCAL_SPEECH_JS = """
(text) => {
    if (text && window.speechSynthesis) {
        const utterance = new SpeechSynthesisUtterance(text);
        utterance.lang = "hi-IN";
        window.speechSynthesis.cancel();
        window.speechSynthesis.speak(utterance);
    }
    return text;
}
"""

InterfaceOutput = Tuple[str, str, Optional[str], dict, List[List[str]], str, str]
EventsOutput = Tuple[List[List[str]], str, dict, bool]


def _prune_audio() -> None:
    saved = sorted(OUTPUT_DIR.glob("assistant_*.mp3"))
    for stale in saved[:-MAX_SAVED_REPLIES]:
        stale.unlink(missing_ok=True)


def _save_audio(audio: bytes) -> Optional[str]:
    if not audio:
        return None
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.utcnow().strftime("%Y%m%d%H%M%S%f")
    output_path = OUTPUT_DIR / f"assistant_{timestamp}.mp3"
    output_path.write_bytes(audio)
    _prune_audio()
    return str(output_path)


def events_to_rows(events: List[Event], date_filter: str = "") -> List[List[str]]:
    date_filter = (date_filter or "").strip()
    rows = []
    for event in sort_events(events):
        if date_filter and event.date != date_filter:
            continue
        rows.append([event.date, event.time, event.title, event.language])
    return rows


def event_choices(events: List[Event]) -> List[Tuple[str, str]]:
    return [(f"{event.date} {event.time} - {event.title}", event.id) for event in sort_events(events)]


def _events_view(events: List[Event], date_filter: str, status: str = "") -> EventsOutput:
    return (
        events_to_rows(events, date_filter),
        status,
        gr.update(choices=event_choices(events), value=None),
        False,
    )


def _render(result: CalendarInteractionResult, synthesizer: DeepgramSynthesizer) -> InterfaceOutput:
    if synthesizer.has_native_voice(result.intent.language):
        audio_path, local_speech = _save_audio(result.audio), ""
    else:
        audio_path, local_speech = None, result.response_text
    return (
        result.transcription,
        result.response_text,
        audio_path,
        result.intent.to_dict(),
        events_to_rows(result.events),
        "",
        local_speech,
    )


def _render_failure(message: str, exc: Exception) -> InterfaceOutput:
    return ("", message, None, {}, [], str(exc), "")


async def delete_selected_event(
    assistant: VoiceCalendarAssistant, event_id: Optional[str], confirmed: bool, date_filter: str = ""
) -> EventsOutput:
    """Delete one event picked in the UI once the user has confirmed it."""
    try:
        if not event_id or not confirmed:
            events = await asyncio.to_thread(assistant.list_events)
            status = "Select an event to delete." if not event_id else "Tick the confirmation box to delete."
            return _events_view(events, date_filter, status)
        result = await assistant.delete_event(event_id)
    except AssistantError as exc:
        logger.error("Deleting event %s failed: %s", event_id, exc, exc_info=True)
        return [], str(exc), gr.update(), False
    return _events_view(result.events, date_filter, result.message)


def build_interface(assistant: VoiceCalendarAssistant) -> gr.Blocks:
    async def voice_interface(audio_input) -> InterfaceOutput:
        if not audio_input:
            return ("", "Please provide an audio recording to process.", None, {}, [], "", "")
        mimetype = mimetypes.guess_type(audio_input)[0] or "audio/wav"
        try:
            audio = Path(audio_input).read_bytes()
            result = await assistant.handle_audio(audio, mimetype)
        except Exception as exc:
            logger.exception("Voice request failed")
            return _render_failure("Failed to process voice input.", exc)
        return _render(result, assistant.synthesizer)

    async def text_interface(text) -> InterfaceOutput:
        if not text or not text.strip():
            return ("", "Please type a command.", None, {}, [], "", "")
        try:
            result = await assistant.handle_text(text.strip())
        except Exception as exc:
            logger.exception("Text request failed")
            return _render_failure("Failed to process text input.", exc)
        return _render(result, assistant.synthesizer)

    def events_interface(date_filter) -> EventsOutput:
        try:
            events = assistant.list_events()
        except AssistantError as exc:
            logger.error("Loading events failed: %s", exc, exc_info=True)
            return [], str(exc), gr.update(), False
        return _events_view(events, date_filter)

    async def delete_interface(event_id, confirmed, date_filter) -> EventsOutput:
        return await delete_selected_event(assistant, event_id, confirmed, date_filter)

    with gr.Blocks(theme=gr.themes.Soft(), title="Voice Calendar Assistant") as demo:
        gr.Markdown(
            "## Voice Calendar Assistant\n"
            "Add, list and cancel events by voice or text, in English or Hindi."
        )

        with gr.Tabs():
            with gr.TabItem("Voice"):
                audio_input = gr.Audio(sources=["microphone"], type="filepath", label="Record your command")
                process_button = gr.Button("Process Voice Command", variant="primary")
            with gr.TabItem("Text"):
                text_input = gr.Textbox(
                    label="Command",
                    placeholder="Schedule a meeting with John tomorrow at 3 PM",
                )
                send_button = gr.Button("Send", variant="primary")

        transcription_output = gr.Textbox(label="Transcription", interactive=False, lines=2)
        response_output = gr.Textbox(label="Assistant Response", interactive=False, lines=3)
        audio_output = gr.Audio(label="Assistant Audio", type="filepath", interactive=False, autoplay=True)
        local_speech = gr.Textbox(visible=False)

        with gr.Accordion("Intent Details", open=False):
            intent_output = gr.JSON(label="Intent")
            error_output = gr.Textbox(label="Errors", interactive=False, lines=2)

        gr.Markdown("### Events")
        with gr.Row():
            date_filter = gr.Textbox(label="Filter by date (YYYY-MM-DD)", placeholder="All dates")
            refresh_button = gr.Button("Refresh")
        events_output = gr.Dataframe(headers=EVENT_HEADERS, interactive=False)
        with gr.Row():
            event_picker = gr.Dropdown(label="Event to delete", choices=[], interactive=True)
            confirm_delete = gr.Checkbox(label="Yes, delete this event", value=False)
            delete_button = gr.Button("Delete Event", variant="stop")
        events_status = gr.Textbox(label="Status", interactive=False)

        outputs = [
            transcription_output,
            response_output,
            audio_output,
            intent_output,
            events_output,
            error_output,
            local_speech,
        ]
        events_outputs = [events_output, events_status, event_picker, confirm_delete]

        process_button.click(fn=voice_interface, inputs=[audio_input], outputs=outputs).then(
            fn=events_interface, inputs=[date_filter], outputs=events_outputs
        )
        send_button.click(fn=text_interface, inputs=[text_input], outputs=outputs).then(
            fn=events_interface, inputs=[date_filter], outputs=events_outputs
        )
        text_input.submit(fn=text_interface, inputs=[text_input], outputs=outputs).then(
            fn=events_interface, inputs=[date_filter], outputs=events_outputs
        )
        local_speech.change(fn=None, inputs=[local_speech], outputs=None, js=LOCAL_SPEECH_JS)
        refresh_button.click(fn=events_interface, inputs=[date_filter], outputs=events_outputs)
        delete_button.click(
            fn=delete_interface, inputs=[event_picker, confirm_delete, date_filter], outputs=events_outputs
        )
        demo.load(fn=events_interface, inputs=[date_filter], outputs=events_outputs)

    return demo


def create_app(settings: Settings) -> FastAPI:
    assistant = VoiceCalendarAssistant.from_settings(settings)
    app = create_api(assistant, settings)

    @app.get("/", include_in_schema=False)
    async def index():
        return RedirectResponse(url="/ui")

    return gr.mount_gradio_app(app, build_interface(assistant), path="/ui")


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    logger.info("Voice Calendar Assistant running on http://localhost:%s", settings.port)
    logger.info("OpenAI API key: %s", "configured" if settings.openai_api_key else "missing")
    logger.info("Deepgram API key: %s", "configured" if settings.deepgram_api_key else "missing")
    logger.info("Event store: %s", settings.event_store)

    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
