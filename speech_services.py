import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import httpx

from errors import ConfigurationError, SynthesisError, TranscriptionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transcription:
    text: str
    language: str
    confidence: float


def select_transcription(attempts: Sequence[Optional[Transcription]]) -> Transcription:
    """Pick the attempt with the strictly highest confidence.

    Failed attempts are passed as None and skipped. On a tie the earlier
    attempt wins, so callers list their preferred language first.
    """
    best: Optional[Transcription] = None
    for attempt in attempts:
        if attempt is None:
            continue
        if best is None or attempt.confidence > best.confidence:
            best = attempt
    if best is None:
        raise TranscriptionError("Speech recognition failed for every language.")
    return best


def _first_alternative(payload: Any) -> Dict[str, Any]:
    try:
        alternative = payload["results"]["channels"][0]["alternatives"][0]
    except (KeyError, IndexError, TypeError):
        return {}
    return alternative if isinstance(alternative, dict) else {}


class DeepgramTranscriber:
    """Pre-recorded speech recognition, one request per candidate language."""

    LISTEN_URL = "https://api.deepgram.com/v1/listen"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "nova-2",
        languages: Sequence[str] = ("en", "hi"),
        timeout: int = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.languages = tuple(languages)
        self.timeout = timeout
        self.transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _transcribe_once(
        self, client: httpx.AsyncClient, audio: bytes, mimetype: str, language: str
    ) -> Optional[Transcription]:
        params = {
            "model": self.model,
            "language": language,
            "smart_format": "true",
            "punctuate": "true",
        }
        headers = {"Authorization": f"Token {self.api_key}", "Content-Type": mimetype}
        try:
            response = await client.post(self.LISTEN_URL, params=params, headers=headers, content=audio)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Deepgram transcription failed for language %s: %s", language, exc)
            return None

        alternative = _first_alternative(payload)
        try:
            confidence = float(alternative.get("confidence") or 0.0)
        except (TypeError, ValueError):
            confidence = 0.0
        return Transcription(
            text=str(alternative.get("transcript") or ""),
            language=language,
            confidence=confidence,
        )

    async def transcribe(self, audio: bytes, mimetype: str = "audio/webm") -> Transcription:
        if not self.is_configured():
            raise ConfigurationError("Speech service is not configured. Provide DEEPGRAM_API_KEY.")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            attempts = await asyncio.gather(
                *(self._transcribe_once(client, audio, mimetype, language) for language in self.languages)
            )

        for attempt in attempts:
            if attempt is not None:
                logger.info(
                    "%s transcription: %s (confidence %.3f)", attempt.language, attempt.text, attempt.confidence
                )

        selected = select_transcription(attempts)
        if not selected.text.strip():
            raise TranscriptionError("No speech was recognized in the audio.")
        logger.info("Selected transcription: %s (language %s)", selected.text, selected.language)
        return selected


class DeepgramSynthesizer:
    """Text to speech through Deepgram Aura.

    Aura has no Hindi voice. Languages without an entry in `voices` are
    rendered with the default voice; callers that need native output for
    those languages must use another rendering path.
    """

    SPEAK_URL = "https://api.deepgram.com/v1/speak"

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_voice: str = "aura-asteria-en",
        voices: Optional[Dict[str, str]] = None,
        encoding: str = "mp3",
        timeout: int = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.default_voice = default_voice
        self.voices = voices if voices is not None else {"en": default_voice}
        self.encoding = encoding
        self.timeout = timeout
        self.transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def has_native_voice(self, language: str) -> bool:
        return language in self.voices

    def voice_for(self, language: str) -> str:
        voice = self.voices.get(language)
        if voice is None:
            logger.warning("No native voice for language %s, using %s", language, self.default_voice)
            return self.default_voice
        return voice

    async def synthesize(self, text: str, language: str = "en") -> bytes:
        if not self.is_configured():
            raise ConfigurationError("Speech service is not configured. Provide DEEPGRAM_API_KEY.")
        if not text or not text.strip():
            raise SynthesisError("There is no text to synthesize.")

        params = {"model": self.voice_for(language), "encoding": self.encoding}
        headers = {"Authorization": f"Token {self.api_key}", "Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.SPEAK_URL, params=params, headers=headers, json={"text": text})
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SynthesisError(f"Deepgram speech synthesis failed: {exc}") from exc

        if not response.content:
            raise SynthesisError("No audio stream returned from Deepgram.")
        logger.info("TTS audio generated, size: %s bytes", len(response.content))
        return response.content
