"""
Shared fixtures and fakes for the Echo Transcribe test suite.

The fakes stand in for the Gemini client and for ffmpeg so the pipeline
can be exercised without network access or media tooling.
"""

import os
import tempfile
from pathlib import Path
from typing import Callable, Optional

import pytest

os.environ.setdefault("TEMP_DIR", tempfile.mkdtemp(prefix="echo-transcribe-tests-"))

from domain.models import AudioSegment  # noqa: E402
from ports.audio import AudioProcessingPort  # noqa: E402
from ports.progress import ProgressPort  # noqa: E402


class FakeTranscription:
    """TranscriptionPort fake returning queued raw model outputs."""

    def __init__(self, responses=None, valid: bool = True):
        self.responses = list(responses or [])
        self.valid = valid
        self.calls: list[dict] = []
        self.validations = 0

    def transcribe(self, audio_bytes, mime_type, prompt, system_prompt=None):
        self.calls.append({
            "audio_bytes": audio_bytes,
            "mime_type": mime_type,
            "prompt": prompt,
            "system_prompt": system_prompt,
        })
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def validate_credential(self) -> bool:
        self.validations += 1
        return self.valid

    def model_name(self) -> str:
        return "fake-model"


class FakeAudio(AudioProcessingPort):
    """Audio adapter fake that splits into fixed-length virtual chunks."""

    def __init__(self, duration: float, work_dir: Path, chunk_bytes: bytes = b"RIFF"):
        self.duration = duration
        self.work_dir = work_dir
        self.chunk_bytes = chunk_bytes
        self.initialized = False
        self.cleaned_up = False
        self.released: list[int] = []
        self.max_durations: list[float] = []

    def initialize(self) -> None:
        self.initialized = True

    def cleanup(self) -> None:
        self.cleaned_up = True

    def probe_duration(self, audio_path: Path) -> float:
        return self.duration

    def segment(
        self,
        audio_path: Path,
        mime_type: str,
        max_duration_seconds: float,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> list[AudioSegment]:
        self.max_durations.append(max_duration_seconds)
        if self.duration <= max_duration_seconds:
            return [AudioSegment(Path(audio_path), mime_type, 0.0, self.duration, 0)]

        segments = []
        start, index = 0.0, 0
        while start < self.duration:
            path = self.work_dir / f"segment_{index:03d}.wav"
            path.write_bytes(self.chunk_bytes + bytes([index]))
            segments.append(AudioSegment(
                path, "audio/wav", start, min(start + max_duration_seconds, self.duration), index,
            ))
            start += max_duration_seconds
            index += 1
        for i in range(len(segments)):
            if on_progress:
                on_progress((i + 1) / len(segments))
        return segments

    def release(self, segment: AudioSegment) -> None:
        if segment.index not in self.released:
            self.released.append(segment.index)


class RecordingProgress(ProgressPort):
    def __init__(self):
        self.events: list[tuple[str, float]] = []

    def report(self, job_id, stage, percent, message):
        self.events.append((stage, percent))


@pytest.fixture
def audio_file(tmp_path) -> Path:
    path = tmp_path / "meeting.mp3"
    path.write_bytes(b"ID3fake-mp3-bytes")
    return path


@pytest.fixture
def recording_progress() -> RecordingProgress:
    return RecordingProgress()
