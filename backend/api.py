"""HTTP boundary for Echo Transcribe.

Routes:
    POST    /transcribe    multipart upload -> TranscriptionResponse
    OPTIONS /transcribe    CORS preflight
    POST    /validate-key  {apiKey} -> {valid}
    POST    /export        transcript -> .txt / .json attachment
    GET     /health
"""

import os
import shutil
import logging
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from config import Config, get_config, create_audio_adapter, create_infra_adapters, create_transcription_adapter
from domain.errors import TranscriberError, ValidationError
from domain.models import TranscriptionOptions
from mappers import content_disposition, dto_to_result, export_filename, render_json, render_text, result_to_dto
from middleware import RateLimitMiddleware
from models import ExportRequest, TranscriptionResponse, ValidateKeyRequest, ValidateKeyResponse
from ports.audio import AudioProcessingPort
from ports.progress import ProgressPort
from ports.rate_limiter import RateLimiterPort
from ports.transcription import TranscriptionPort
from use_cases.transcribe import TranscribeAudioUseCase, TranscribeRequest

logger = logging.getLogger(__name__)

ALLOWED_AUDIO_TYPES = {
    "audio/wav", "audio/x-wav", "audio/wave",
    "audio/mp3", "audio/mpeg",
    "audio/aiff",
    "audio/aac",
    "audio/ogg",
    "audio/flac",
    "audio/mp4", "audio/x-m4a",
}

# Browser MIME types -> the names Gemini documents for audio input.
PROVIDER_MIME_TYPES = {
    "audio/x-wav": "audio/wav",
    "audio/wave": "audio/wav",
    "audio/mpeg": "audio/mp3",
    "audio/x-m4a": "audio/mp4",
}

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

DEFAULT_SPEAKER_COUNT = 2


def _parse_speaker_count(raw: Optional[str]) -> int:
    if raw is None or not raw.strip():
        return DEFAULT_SPEAKER_COUNT
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError("speakerCount must be a positive integer")
    if value < 1:
        raise ValidationError("speakerCount must be a positive integer")
    return value


def _save_upload(upload: UploadFile, temp_dir: str) -> Path:
    suffix = os.path.splitext(upload.filename or "")[1] or ".audio"
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix, dir=temp_dir) as tmp:
        shutil.copyfileobj(upload.file, tmp)
        return Path(tmp.name)


def create_app(
    cfg: Optional[Config] = None,
    rate_limiter: Optional[RateLimiterPort] = None,
    progress: Optional[ProgressPort] = None,
    transcription_factory: Optional[Callable[[str], TranscriptionPort]] = None,
    audio_factory: Optional[Callable[[], AudioProcessingPort]] = None,
) -> FastAPI:
    """Build the FastAPI app. Every collaborator can be injected for tests."""
    cfg = cfg or get_config()
    if rate_limiter is None or progress is None:
        infra = create_infra_adapters(cfg)
        rate_limiter = rate_limiter or infra["rate_limiter"]
        progress = progress or infra["progress"]
    transcription_factory = transcription_factory or (lambda key: create_transcription_adapter(key, cfg))
    audio_factory = audio_factory or (lambda: create_audio_adapter(cfg))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        start = getattr(rate_limiter, "start_sweeper", None)
        if start:
            start(cfg.rate_limit_sweep_interval)
        try:
            yield
        finally:
            stop = getattr(rate_limiter, "stop_sweeper", None)
            if stop:
                stop()

    app = FastAPI(title="Echo Transcribe", lifespan=lifespan)
    app.add_middleware(
        RateLimitMiddleware,
        limiter=rate_limiter,
        max_requests=cfg.rate_limit_max_requests,
        window_seconds=cfg.rate_limit_window,
    )

    @app.exception_handler(TranscriberError)
    async def transcriber_error_handler(request: Request, exc: TranscriberError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        detail = first.get("msg", "invalid request")
        return JSONResponse(
            status_code=400,
            content={"error": f"Invalid request: {field + ': ' if field else ''}{detail}"},
        )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.options("/transcribe")
    def transcribe_preflight():
        return Response(status_code=200, headers=CORS_HEADERS)

    @app.post("/transcribe", response_model=TranscriptionResponse)
    def transcribe(
        audio: Optional[UploadFile] = File(None),
        apiKey: Optional[str] = Form(None),
        systemPrompt: Optional[str] = Form(None),
        speakerCount: Optional[str] = Form(None),
    ):
        if audio is None or not apiKey:
            raise ValidationError("Missing required fields: audio file and API key")
        if audio.content_type not in ALLOWED_AUDIO_TYPES:
            raise ValidationError("Invalid audio file type")
        speaker_count = _parse_speaker_count(speakerCount)

        audio_path: Optional[Path] = None
        try:
            transcription = transcription_factory(apiKey)
            if not transcription.validate_credential():
                return JSONResponse(status_code=401, content={"error": "Invalid API key"})

            audio_path = _save_upload(audio, cfg.temp_dir)
            logger.info(f"Received {audio.filename} ({audio.content_type}, {audio_path.stat().st_size} bytes)")
            use_case = TranscribeAudioUseCase(
                transcription=transcription,
                audio=audio_factory(),
                progress=progress,
            )
            result = use_case.execute(TranscribeRequest(
                audio_path=audio_path,
                mime_type=PROVIDER_MIME_TYPES.get(audio.content_type, audio.content_type),
                filename=audio.filename,
                options=TranscriptionOptions(
                    api_key=apiKey,
                    system_prompt=systemPrompt or None,
                    speaker_count=speaker_count,
                ),
                max_segment_duration=cfg.max_segment_duration,
            ))
            return result_to_dto(result)
        except TranscriberError:
            raise
        except Exception as e:
            logger.error(f"Transcription error: {e}", exc_info=True)
            return JSONResponse(status_code=500, content={"error": str(e) or "Internal server error"})
        finally:
            try:
                if audio_path is not None and audio_path.exists():
                    os.unlink(audio_path)
            except OSError as e:
                logger.warning(f"Cleanup error: {e}")

    @app.post("/validate-key", response_model=ValidateKeyResponse)
    def validate_key(payload: ValidateKeyRequest):
        if not payload.apiKey:
            raise ValidationError("API key is required")
        try:
            valid = transcription_factory(payload.apiKey).validate_credential()
        except Exception as e:
            logger.error(f"Validation error: {type(e).__name__}")
            return JSONResponse(status_code=500, content={"error": "Failed to validate API key"})
        return ValidateKeyResponse(valid=valid)

    @app.post("/export")
    def export(payload: ExportRequest):
        result = dto_to_result(payload.result)
        if payload.format == "json":
            body = render_json(result, payload.fileName)
            media_type = "application/json"
        else:
            body = render_text(result)
            media_type = "text/plain; charset=utf-8"
        filename = export_filename(payload.fileName, payload.format)
        return Response(
            content=body,
            media_type=media_type,
            headers={"Content-Disposition": content_disposition(filename)},
        )

    return app
