import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from dotenv import load_dotenv

load_dotenv()

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def _get_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _get_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass
class Settings:
    """Runtime configuration read from the environment (and `.env`)."""

    openai_api_key: Optional[str] = None
    deepgram_api_key: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 3000
    intent_model: str = "gpt-4o-mini"
    intent_temperature: float = 0.7
    stt_model: str = "nova-2"
    tts_voice: str = "aura-asteria-en"
    event_store: str = "calendar.json"
    service_timeout: int = 60
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            deepgram_api_key=os.getenv("DEEPGRAM_API_KEY") or None,
            host=os.getenv("HOST", "0.0.0.0"),
            port=_get_int("PORT", 3000),
            intent_model=os.getenv("INTENT_MODEL", "gpt-4o-mini"),
            intent_temperature=_get_float("INTENT_TEMPERATURE", 0.7),
            stt_model=os.getenv("DEEPGRAM_STT_MODEL", "nova-2"),
            tts_voice=os.getenv("DEEPGRAM_TTS_VOICE", "aura-asteria-en"),
            event_store=os.getenv("EVENT_STORE", "calendar.json"),
            service_timeout=_get_int("SERVICE_TIMEOUT", 60),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    def health(self) -> Dict:
        return {
            "status": "ok",
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "openaiConfigured": bool(self.openai_api_key),
            "deepgramConfigured": bool(self.deepgram_api_key),
        }


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
