"""FFmpegAudioAdapter — duration probing and segmentation via ffprobe/ffmpeg."""

import os
import math
import shutil
import logging
import tempfile
import subprocess
from pathlib import Path
from typing import Callable, Optional

from domain.errors import DecodeError, SegmentationError
from domain.models import AudioSegment
from ports.audio import AudioProcessingPort

logger = logging.getLogger(__name__)

# Gemini downsamples everything to 16 kHz mono; chunks are encoded to match.
SEGMENT_SAMPLE_RATE = 16000
SEGMENT_CHANNELS = 1
SEGMENT_MIME_TYPE = "audio/wav"


def build_ffprobe_duration_cmd(input_path) -> list[str]:
    return [
        "ffprobe",
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        str(input_path),
    ]


def build_ffmpeg_segment_cmd(
    input_path,
    output_path,
    start_seconds: float,
    duration_seconds: float,
    sample_rate: int = SEGMENT_SAMPLE_RATE,
    channels: int = SEGMENT_CHANNELS,
) -> list[str]:
    """Build the command that extracts one chunk as PCM WAV."""
    if duration_seconds <= 0:
        raise ValueError("duration_seconds must be > 0")
    return [
        "ffmpeg", "-y",
        "-ss", str(start_seconds),
        "-i", str(input_path),
        "-t", str(duration_seconds),
        "-vn",
        "-c:a", "pcm_s16le",
        "-ar", str(sample_rate),
        "-ac", str(channels),
        str(output_path),
    ]


class FFmpegAudioAdapter(AudioProcessingPort):
    """Per-request audio adapter. Owns a temp work directory for chunks."""

    def __init__(self, temp_dir: Optional[str] = None, run=subprocess.run, check_tools: bool = True):
        self._temp_root = temp_dir
        self._run = run
        self._check_tools = check_tools
        self._work_dir: Optional[Path] = None

    @property
    def work_dir(self) -> Optional[Path]:
        return self._work_dir

    def initialize(self) -> None:
        if self._work_dir is not None:
            return
        if self._check_tools:
            for tool in ("ffmpeg", "ffprobe"):
                if shutil.which(tool) is None:
                    raise SegmentationError(f"{tool} not found on PATH")
        self._work_dir = Path(tempfile.mkdtemp(prefix="segments_", dir=self._temp_root))
        logger.debug(f"Audio work dir: {self._work_dir}")

    def cleanup(self) -> None:
        if self._work_dir is None:
            return
        shutil.rmtree(self._work_dir, ignore_errors=True)
        logger.debug(f"Removed audio work dir: {self._work_dir}")
        self._work_dir = None

    def probe_duration(self, audio_path: Path) -> float:
        result = self._run(build_ffprobe_duration_cmd(audio_path), capture_output=True, text=True)
        if result.returncode != 0:
            logger.error(f"ffprobe failed: {result.stderr}")
            raise DecodeError(f"Could not decode audio: {result.stderr.strip() or 'ffprobe failed'}")
        try:
            duration = float(result.stdout.strip())
        except ValueError:
            raise DecodeError(f"Could not determine audio duration from {result.stdout.strip()!r}")
        if math.isnan(duration) or duration < 0:
            raise DecodeError(f"Invalid audio duration: {duration}")
        return duration

    def segment(
        self,
        audio_path: Path,
        mime_type: str,
        max_duration_seconds: float,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> list[AudioSegment]:
        if max_duration_seconds <= 0:
            raise ValueError("max_duration_seconds must be > 0")

        audio_path = Path(audio_path)
        duration = self.probe_duration(audio_path)
        logger.info(f"Audio duration: {duration:.2f} seconds")

        if duration <= max_duration_seconds:
            return [AudioSegment(
                path=audio_path,
                mime_type=mime_type,
                start_time_seconds=0.0,
                end_time_seconds=duration,
                index=0,
            )]

        if self._work_dir is None:
            self.initialize()

        segment_count = math.ceil(duration / max_duration_seconds)
        logger.info(f"Splitting audio into {segment_count} segments of {max_duration_seconds}s")

        segments: list[AudioSegment] = []
        try:
            for i in range(segment_count):
                start_time = i * max_duration_seconds
                end_time = min(start_time + max_duration_seconds, duration)
                output_path = self._work_dir / f"segment_{i:03d}.wav"

                cmd = build_ffmpeg_segment_cmd(audio_path, output_path, start_time, max_duration_seconds)
                result = self._run(cmd, capture_output=True, text=True)
                if result.returncode != 0 or not output_path.exists():
                    logger.error(f"Error extracting segment {i}: {result.stderr}")
                    raise SegmentationError(f"Failed to extract audio segment {i}: {result.stderr.strip()}")

                segments.append(AudioSegment(
                    path=output_path,
                    mime_type=SEGMENT_MIME_TYPE,
                    start_time_seconds=float(start_time),
                    end_time_seconds=float(end_time),
                    index=i,
                ))
                if on_progress:
                    on_progress((i + 1) / segment_count)
        except Exception:
            for seg in segments:
                self.release(seg)
            raise

        return segments

    def release(self, segment: AudioSegment) -> None:
        if self._work_dir is None or Path(segment.path).parent != self._work_dir:
            return
        try:
            if os.path.exists(segment.path):
                os.unlink(segment.path)
        except OSError as e:
            logger.warning(f"Cleanup error: {e}")
