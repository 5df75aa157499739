"""Framework-agnostic domain models for Echo Transcribe.

The pipeline works on these dataclasses. The pydantic DTOs in models.py are
only used at the HTTP boundary, with mappers converting between the two.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class TranscriptSegment:
    """A single speaker turn with a chunk-local or absolute timestamp."""
    speaker: str
    timestamp: str
    text: str


@dataclass
class TranscriptionMetadata:
    speaker_count: int
    processed_at: str
    duration: Optional[str] = None


@dataclass
class TranscriptionResult:
    """Complete transcript for one audio asset."""
    segments: list[TranscriptSegment] = field(default_factory=list)
    metadata: Optional[TranscriptionMetadata] = None


@dataclass
class AudioSegment:
    """A bounded sub-clip of the uploaded audio.

    Transient: lives for one request and is released by the audio adapter
    once its chunk has been transcribed.
    """
    path: Path
    mime_type: str
    start_time_seconds: float
    end_time_seconds: float
    index: int = 0

    @property
    def duration_seconds(self) -> float:
        return self.end_time_seconds - self.start_time_seconds


@dataclass
class TranscriptionOptions:
    api_key: str = field(repr=False)
    system_prompt: Optional[str] = None
    speaker_count: int = 2

    def __post_init__(self):
        if self.speaker_count < 1:
            raise ValueError("speaker_count must be >= 1")
