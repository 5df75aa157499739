"""TranscriptionPort — capability interface for cloud transcription models."""

from typing import Optional, Protocol


class TranscriptionPort(Protocol):
    """A model client bound to one caller's credential."""

    def transcribe(
        self,
        audio_bytes: bytes,
        mime_type: str,
        prompt: str,
        system_prompt: Optional[str] = None,
    ) -> str:
        """Submit audio and return the model's raw text output."""

    def validate_credential(self) -> bool:
        """Return True if the provider accepts the bound credential. Never raises."""

    def model_name(self) -> str:
        """Return the model identifier used for generation."""
