"""GeminiTranscriptionAdapter — audio transcription through the Gemini API.

Audio up to the inline limit (20 MB) is embedded in the request body. Larger
payloads go through the Files API: the file is uploaded, referenced by URI in
the generation request, and deleted again once the response (or error) is in,
so user audio does not linger in provider storage.

One adapter is created per request and bound to that caller's API key. The
key is never logged.
"""

import io
import time
import logging
from typing import Any, Optional

from google import genai
from google.genai import types

from domain.errors import AuthError, TranscriptionProviderError

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "gemini-2.0-flash-exp"
INLINE_LIMIT_BYTES = 20 * 1024 * 1024

# Uploaded audio is usually ACTIVE immediately; poll briefly if it is not.
FILE_POLL_INTERVAL = 1.0
FILE_POLL_TIMEOUT = 120.0

DEFAULT_SYSTEM_PROMPT = """You are transcribing an audio file with multiple speakers. Please:
1. Identify and label different speakers (e.g., Speaker 1, Speaker 2)
2. Include timestamps in MM:SS format at the beginning of each speaker's segment
3. Maintain speaker consistency throughout the transcription
4. Format the output clearly with speaker labels and timestamps
5. Return the transcription in the following JSON format:
{
  "segments": [
    {
      "speaker": "Speaker 1",
      "timestamp": "00:00",
      "text": "Transcribed text here"
    }
  ]
}"""


def _is_auth_failure(exc: Exception) -> bool:
    code = getattr(exc, "code", None)
    if code in (401, 403):
        return True
    message = str(exc).lower()
    return "api key not valid" in message or "api_key_invalid" in message


def _to_pipeline_error(exc: Exception) -> Exception:
    if _is_auth_failure(exc):
        return AuthError("Invalid API key")
    message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
    return TranscriptionProviderError(f"Failed to transcribe audio: {message}")


class GeminiTranscriptionAdapter:
    def __init__(
        self,
        api_key: str,
        model_id: str = DEFAULT_MODEL_ID,
        inline_limit_bytes: int = INLINE_LIMIT_BYTES,
        client: Optional[Any] = None,
    ):
        if not api_key:
            raise ValueError("api_key is required")
        self._client = client if client is not None else genai.Client(api_key=api_key)
        self._model_id = model_id
        self._inline_limit_bytes = inline_limit_bytes

    def __repr__(self) -> str:
        return f"GeminiTranscriptionAdapter(model_id={self._model_id!r})"

    def model_name(self) -> str:
        return self._model_id

    def transcribe(
        self,
        audio_bytes: bytes,
        mime_type: str,
        prompt: str,
        system_prompt: Optional[str] = None,
    ) -> str:
        config = types.GenerateContentConfig(
            system_instruction=system_prompt or DEFAULT_SYSTEM_PROMPT,
        )
        size_mb = len(audio_bytes) / (1024 * 1024)

        if len(audio_bytes) <= self._inline_limit_bytes:
            logger.info(f"Submitting {size_mb:.1f} MB inline to {self._model_id}")
            audio_part = types.Part.from_bytes(data=audio_bytes, mime_type=mime_type)
            return self._generate([audio_part, prompt], config)

        logger.info(f"Uploading {size_mb:.1f} MB via Files API for {self._model_id}")
        uploaded = self._upload(audio_bytes, mime_type)
        try:
            audio_part = types.Part.from_uri(
                file_uri=uploaded.uri,
                mime_type=uploaded.mime_type or mime_type,
            )
            return self._generate([audio_part, prompt], config)
        finally:
            self._delete_upload(uploaded)

    def validate_credential(self) -> bool:
        try:
            response = self._client.models.generate_content(
                model=self._model_id,
                contents="Test",
            )
            return response is not None
        except Exception as e:
            logger.info(f"Credential check failed: {type(e).__name__}")
            return False

    def _generate(self, contents: list, config: types.GenerateContentConfig) -> str:
        try:
            response = self._client.models.generate_content(
                model=self._model_id,
                contents=contents,
                config=config,
            )
        except Exception as e:
            logger.error(f"Gemini request failed ({getattr(e, 'code', None) or type(e).__name__}): {e}")
            raise _to_pipeline_error(e) from e

        text = response.text if response is not None else None
        if not text:
            raise TranscriptionProviderError("Failed to transcribe audio: empty response from model")
        return text

    def _upload(self, audio_bytes: bytes, mime_type: str):
        try:
            uploaded = self._client.files.upload(
                file=io.BytesIO(audio_bytes),
                config=types.UploadFileConfig(mime_type=mime_type),
            )
        except Exception as e:
            logger.error(f"Gemini file upload failed: {e}")
            raise _to_pipeline_error(e) from e

        try:
            return self._wait_until_active(uploaded)
        except Exception:
            self._delete_upload(uploaded)
            raise

    def _wait_until_active(self, uploaded):
        deadline = time.monotonic() + FILE_POLL_TIMEOUT
        while uploaded.state == types.FileState.PROCESSING:
            if time.monotonic() > deadline:
                raise TranscriptionProviderError("Failed to transcribe audio: uploaded file never became active")
            time.sleep(FILE_POLL_INTERVAL)
            try:
                uploaded = self._client.files.get(name=uploaded.name)
            except Exception as e:
                logger.error(f"Gemini file status check failed: {e}")
                raise _to_pipeline_error(e) from e
        if uploaded.state == types.FileState.FAILED:
            raise TranscriptionProviderError("Failed to transcribe audio: provider could not process uploaded file")
        return uploaded

    def _delete_upload(self, uploaded) -> None:
        try:
            self._client.files.delete(name=uploaded.name)
            logger.info(f"Deleted uploaded file {uploaded.name}")
        except Exception as e:
            logger.warning(f"Could not delete uploaded file {uploaded.name}: {e}")
