import asyncio
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from openai import OpenAI

from errors import ConfigurationError, IntentParseError

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ("en", "hi")
DEFAULT_LANGUAGE = "en"

_CODE_FENCE = re.compile(r"^```(?:json)?\s*([\s\S]*?)\s*```$")


class IntentAction(str, Enum):
    ADD_EVENT = "ADD_EVENT"
    LIST_EVENTS = "LIST_EVENTS"
    DELETE_EVENT = "DELETE_EVENT"


@dataclass(frozen=True)
class AddEventData:
    title: str
    date: str
    time: str


@dataclass(frozen=True)
class ListEventsData:
    pass


@dataclass(frozen=True)
class DeleteEventData:
    query: str


IntentData = Union[AddEventData, ListEventsData, DeleteEventData]


@dataclass(frozen=True)
class Intent:
    action: IntentAction
    language: str
    data: IntentData
    response: str

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.data, AddEventData):
            data = {"title": self.data.title, "date": self.data.date, "time": self.data.time}
        elif isinstance(self.data, DeleteEventData):
            data = {"query": self.data.query}
        else:
            data = {}
        return {
            "action": self.action.value,
            "language": self.language,
            "data": data,
            "response": self.response,
        }


def build_system_prompt(now: datetime) -> str:
    """Instructions for the model, grounded on the current local date."""
    today = now.date().isoformat()
    tomorrow = (now + timedelta(days=1)).date().isoformat()
    full_date = f"{now.strftime('%B')} {now.day}, {now.year}"
    day_of_week = now.strftime("%A")

    return f"""You are a multilingual calendar assistant that supports English and Hindi. Today is {full_date} ({day_of_week}).

Your job is to:
1. Detect the user's intent (ADD_EVENT, LIST_EVENTS, or DELETE_EVENT)
2. Extract relevant information (title, date, time)
3. Respond in the SAME language as the user's input
4. Return a JSON response

ACTIONS:
- ADD_EVENT: User wants to schedule/add a meeting or event
- LIST_EVENTS: User wants to see their calendar/events
- DELETE_EVENT: User wants to cancel/remove an event

DATE PARSING:
- "tomorrow" = {tomorrow}
- "today" = {today}
- Convert relative dates (next Monday, Friday, etc.) to ISO format (YYYY-MM-DD)
- If no date specified, use today's date

TIME PARSING:
- Convert to 24-hour format (HH:MM)
- "3 PM" = "15:00", "morning" = "09:00", "afternoon" = "14:00", "evening" = "18:00"

LANGUAGE DETECTION:
- Detect if input is English or Hindi
- Respond in the same language

RESPONSE FORMAT (JSON):
{{
  "action": "ADD_EVENT" | "LIST_EVENTS" | "DELETE_EVENT",
  "language": "en" | "hi",
  "data": {{
    "title": "Meeting title" (for ADD_EVENT),
    "date": "YYYY-MM-DD" (for ADD_EVENT),
    "time": "HH:MM" (for ADD_EVENT),
    "query": "search term" (for DELETE_EVENT - time, title, or date to match)
  }},
  "response": "Natural language response in user's language"
}}

EXAMPLES:

Input: "Schedule a meeting with John tomorrow at 3 PM"
Output: {{
  "action": "ADD_EVENT",
  "language": "en",
  "data": {{
    "title": "Meeting with John",
    "date": "{tomorrow}",
    "time": "15:00"
  }},
  "response": "I've scheduled a meeting with John for tomorrow at 3 PM."
}}

Input: "What's on my calendar today?"
Output: {{
  "action": "LIST_EVENTS",
  "language": "en",
  "data": {{}},
  "response": "Here are your events for today:"
}}

Input: "Cancel my 3 PM meeting"
Output: {{
  "action": "DELETE_EVENT",
  "language": "en",
  "data": {{
    "query": "15:00"
  }},
  "response": "I'll cancel your 3 PM meeting."
}}

Input: "कल शाम 5 बजे मीटिंग रखो"
Output: {{
  "action": "ADD_EVENT",
  "language": "hi",
  "data": {{
    "title": "मीटिंग",
    "date": "{tomorrow}",
    "time": "17:00"
  }},
  "response": "मैंने कल शाम 5 बजे के लिए मीटिंग शेड्यूल कर दी है।"
}}

Input: "आज मेरी क्या मीटिंग है?"
Output: {{
  "action": "LIST_EVENTS",
  "language": "hi",
  "data": {{}},
  "response": "आज की आपकी मीटिंग्स:"
}}

Always return valid JSON only. No additional text."""


def _require_text(data: Dict[str, Any], key: str, action: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise IntentParseError(f"{action} intent is missing '{key}'.")
    return value.strip()


def _parse_data(action: IntentAction, data: Dict[str, Any]) -> IntentData:
    if action is IntentAction.ADD_EVENT:
        title = _require_text(data, "title", action.value)
        raw_date = _require_text(data, "date", action.value)
        raw_time = _require_text(data, "time", action.value)
        try:
            date = datetime.strptime(raw_date, "%Y-%m-%d").date().isoformat()
        except ValueError as exc:
            raise IntentParseError(f"ADD_EVENT date '{raw_date}' is not YYYY-MM-DD.") from exc
        try:
            time = datetime.strptime(raw_time, "%H:%M").strftime("%H:%M")
        except ValueError as exc:
            raise IntentParseError(f"ADD_EVENT time '{raw_time}' is not HH:MM.") from exc
        return AddEventData(title=title, date=date, time=time)
    if action is IntentAction.DELETE_EVENT:
        return DeleteEventData(query=_require_text(data, "query", action.value))
    return ListEventsData()


def parse_intent(payload: str) -> Intent:
    """Parse the model's text output into an Intent or raise IntentParseError."""
    text = (payload or "").strip()
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise IntentParseError(f"Model output is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise IntentParseError("Model output is not a JSON object.")

    try:
        action = IntentAction(raw.get("action"))
    except ValueError as exc:
        raise IntentParseError(f"Unknown intent action: {raw.get('action')!r}") from exc

    language = raw.get("language")
    if language not in SUPPORTED_LANGUAGES:
        logger.warning("Unsupported intent language %r, using %s", language, DEFAULT_LANGUAGE)
        language = DEFAULT_LANGUAGE

    response = raw.get("response")
    if not isinstance(response, str) or not response.strip():
        raise IntentParseError("Model output is missing the 'response' text.")

    data = raw.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise IntentParseError("Intent 'data' must be an object.")

    return Intent(action=action, language=language, data=_parse_data(action, data), response=response)


class IntentResolver:
    """Turns a free-form utterance into an Intent with one language-model call."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        max_output_tokens: int = 1024,
        client: Optional[Any] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.client = client or (OpenAI(api_key=api_key) if api_key else None)
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.clock = clock

    def is_configured(self) -> bool:
        return self.client is not None

    async def resolve(self, utterance: str) -> Intent:
        if not self.is_configured():
            raise ConfigurationError("Intent resolver is not configured. Provide OPENAI_API_KEY.")

        logger.info("Processing intent for: %s", utterance)
        system_prompt = build_system_prompt(self.clock())

        def _call_openai() -> str:
            params: Dict[str, Any] = {
                "model": self.model,
                "instructions": system_prompt,
                "input": utterance,
                "temperature": self.temperature,
                "max_output_tokens": self.max_output_tokens,
                "text": {"format": {"type": "json_object"}},
            }
            try:
                response = self.client.responses.create(**params)
            except TypeError as exc:
                # Older SDKs do not accept the text format option.
                if "text" not in str(exc):
                    raise
                params.pop("text", None)
                response = self.client.responses.create(**params)
            return response.output_text

        payload = await asyncio.to_thread(_call_openai)
        intent = parse_intent(payload)
        logger.info("Resolved intent %s (%s)", intent.action.value, intent.language)
        return intent
