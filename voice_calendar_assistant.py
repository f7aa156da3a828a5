import asyncio
import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from action_executor import ActionExecutor, ActionResult
from config import Settings
from event_store import Event, EventStore, build_event_store
from intent_resolver import Intent, IntentResolver
from speech_services import DeepgramSynthesizer, DeepgramTranscriber

logger = logging.getLogger(__name__)


@dataclass
class CalendarInteractionResult:
    transcription: str
    response_text: str
    audio: bytes
    intent: Intent
    events: List[Event] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "transcription": self.transcription,
            "response": self.response_text,
            "audio": base64.b64encode(self.audio).decode("ascii"),
            "events": [event.to_dict() for event in self.events],
            "intent": self.intent.to_dict(),
        }


class VoiceCalendarAssistant:
    """Runs one request through transcription, intent, action and speech.

    Each stage raises its own AssistantError subclass and nothing after a
    failing stage runs.
    """

    def __init__(
        self,
        store: EventStore,
        resolver: IntentResolver,
        transcriber: DeepgramTranscriber,
        synthesizer: DeepgramSynthesizer,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.executor = ActionExecutor(store)
        self.transcriber = transcriber
        self.synthesizer = synthesizer

    @classmethod
    def from_settings(cls, settings: Settings) -> "VoiceCalendarAssistant":
        return cls(
            store=build_event_store(settings.event_store),
            resolver=IntentResolver(
                api_key=settings.openai_api_key,
                model=settings.intent_model,
                temperature=settings.intent_temperature,
            ),
            transcriber=DeepgramTranscriber(
                api_key=settings.deepgram_api_key,
                model=settings.stt_model,
                timeout=settings.service_timeout,
            ),
            synthesizer=DeepgramSynthesizer(
                api_key=settings.deepgram_api_key,
                default_voice=settings.tts_voice,
                timeout=settings.service_timeout,
            ),
        )

    async def handle_audio(self, audio: bytes, mimetype: str = "audio/webm") -> CalendarInteractionResult:
        logger.info("Step 1: Transcribing audio (%s bytes)", len(audio))
        transcription = await self.transcriber.transcribe(audio, mimetype)
        return await self._respond(transcription.text)

    async def handle_text(self, text: str) -> CalendarInteractionResult:
        logger.info("Input text: %s", text)
        return await self._respond(text)

    def list_events(self) -> List[Event]:
        return self.store.load()

    async def delete_event(self, event_id: str) -> ActionResult:
        return await asyncio.to_thread(self.executor.delete_by_id, event_id)

    async def _respond(self, utterance: str) -> CalendarInteractionResult:
        logger.info("Step 2: Processing intent")
        intent = await self.resolver.resolve(utterance)

        logger.info("Step 3: Executing %s", intent.action.value)
        result = await asyncio.to_thread(self.executor.execute, intent)

        logger.info("Step 4: Generating speech")
        audio = await self.synthesizer.synthesize(result.message, intent.language)

        return CalendarInteractionResult(
            transcription=utterance,
            response_text=result.message,
            audio=audio,
            intent=intent,
            events=result.events,
        )
