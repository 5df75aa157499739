"""AudioProcessingPort — abstract interface for audio segmentation."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional

from domain.models import AudioSegment


class AudioProcessingPort(ABC):
    @abstractmethod
    def initialize(self) -> None:
        """Acquire per-request resources (work directory, tool checks)."""

    @abstractmethod
    def cleanup(self) -> None:
        """Release everything initialize() and segment() created."""

    @abstractmethod
    def probe_duration(self, audio_path: Path) -> float:
        """Return the duration in seconds. Raises DecodeError if undecodable."""

    @abstractmethod
    def segment(
        self,
        audio_path: Path,
        mime_type: str,
        max_duration_seconds: float,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> list[AudioSegment]:
        """Split audio into ordered segments no longer than max_duration_seconds."""

    @abstractmethod
    def release(self, segment: AudioSegment) -> None:
        """Free the temporary file backing a segment, if the adapter owns it."""

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cleanup()
        return False
