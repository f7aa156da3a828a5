"""
REST endpoints for the voice calendar assistant.

POST /api/voice   - process a recorded voice command
POST /api/text    - process a typed command
GET  /api/events  - list stored events
DELETE /api/events/{id} - remove one event by id
GET  /api/health  - report which external services are configured
"""

import asyncio
import logging
from typing import Optional

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config import Settings

logger = logging.getLogger(__name__)


class TextRequest(BaseModel):
    text: Optional[str] = None


def _failure(error: str, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": error, "details": str(exc)})


def create_api(assistant, settings: Settings) -> FastAPI:
    app = FastAPI(
        title="Voice Calendar Assistant",
        description="Voice and text driven calendar in English and Hindi",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.assistant = assistant
    app.state.settings = settings

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        # A non-JSON body or a non-string text field is still a missing command.
        if request.url.path == "/api/text":
            return JSONResponse(status_code=400, content={"error": "No text provided"})
        return await request_validation_exception_handler(request, exc)

    @app.post("/api/voice")
    async def voice_input(request: Request, audio: Optional[UploadFile] = File(None)):
        if audio is None:
            return JSONResponse(status_code=400, content={"error": "No audio file provided"})
        try:
            payload = await audio.read()
            if not payload:
                return JSONResponse(status_code=400, content={"error": "No audio file provided"})
            result = await request.app.state.assistant.handle_audio(
                payload, audio.content_type or "audio/webm"
            )
        except Exception as exc:
            logger.exception("Error in /api/voice")
            return _failure("Failed to process voice input", exc)
        return result.to_payload()

    @app.post("/api/text")
    async def text_input(request: Request, body: Optional[TextRequest] = None):
        if body is None or not body.text or not body.text.strip():
            return JSONResponse(status_code=400, content={"error": "No text provided"})
        try:
            result = await request.app.state.assistant.handle_text(body.text)
        except Exception as exc:
            logger.exception("Error in /api/text")
            return _failure("Failed to process text input", exc)
        return result.to_payload()

    @app.get("/api/events")
    async def list_events(request: Request):
        try:
            events = await asyncio.to_thread(request.app.state.assistant.list_events)
        except Exception as exc:
            logger.exception("Error in /api/events")
            return _failure("Failed to load events", exc)
        return {"events": [event.to_dict() for event in events]}

    @app.delete("/api/events/{event_id}")
    async def delete_event(event_id: str, request: Request):
        try:
            result = await request.app.state.assistant.delete_event(event_id)
        except Exception as exc:
            logger.exception("Error in /api/events/%s", event_id)
            return _failure("Failed to delete event", exc)
        if not result.deleted:
            return JSONResponse(status_code=404, content={"error": "Event not found"})
        return {"message": result.message, "events": [event.to_dict() for event in result.events]}

    @app.get("/api/health")
    async def health(request: Request):
        return request.app.state.settings.health()

    return app
