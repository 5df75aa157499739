"""Gemini adapter for cloud transcription with speaker labels."""

from .transcription import GeminiTranscriptionAdapter

__all__ = ["GeminiTranscriptionAdapter"]
