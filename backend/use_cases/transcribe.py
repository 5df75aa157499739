"""TranscribeAudioUseCase — orchestrates the full transcription pipeline.

Accepts all ports via dependency injection. One use case instance serves one
request: it owns the audio adapter's lifecycle and the segments produced for
that request.

Pipeline: initialize -> duration check -> single chunk or split-and-iterate
-> merge -> done. Chunks are processed strictly in order so that progress and
cleanup stay deterministic. Each chunk is transcribed independently and the
model counts from 00:00, so chunk-local timestamps are re-based onto the
absolute timeline before merging. Speaker labels are not reconciled across
chunks.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from domain.models import (
    AudioSegment, TranscriptSegment, TranscriptionMetadata,
    TranscriptionOptions, TranscriptionResult,
)
from domain.timestamps import format_timestamp, rebase_timestamp
from normalizer import normalize
from ports.audio import AudioProcessingPort
from ports.progress import ProgressPort
from ports.transcription import TranscriptionPort

logger = logging.getLogger(__name__)

# 9.5 hours: the longest audio Gemini accepts in a single request.
MAX_SEGMENT_DURATION = 34200

ProgressCallback = Callable[[float, str], None]


def build_user_prompt(speaker_count: int) -> str:
    return f"Please transcribe this audio file. There are approximately {speaker_count} speakers."


@dataclass
class TranscribeRequest:
    """All parameters for a transcription request."""
    audio_path: Path
    mime_type: str
    options: TranscriptionOptions
    filename: Optional[str] = None
    max_segment_duration: float = MAX_SEGMENT_DURATION


@dataclass
class _RunState:
    job_id: str
    on_progress: Optional[ProgressCallback] = None
    merged: list[TranscriptSegment] = field(default_factory=list)


class TranscribeAudioUseCase:
    def __init__(
        self,
        transcription: TranscriptionPort,
        audio: AudioProcessingPort,
        progress: ProgressPort,
    ):
        self._transcription = transcription
        self._audio = audio
        self._progress = progress

    def execute(
        self,
        req: TranscribeRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TranscriptionResult:
        """Run the full pipeline and return the merged transcript."""
        run = _RunState(job_id=uuid.uuid4().hex[:12], on_progress=on_progress)
        logger.info(
            f"Job {run.job_id}: {req.filename or Path(req.audio_path).name} "
            f"({req.mime_type}, ~{req.options.speaker_count} speakers)"
        )

        # 1. Init
        self._report(run, "initializing", 0, "Preparing audio processing")
        with self._audio:
            # 2. Duration check + segmentation
            self._report(run, "analyzing", 5, "Analyzing audio duration")
            segments = self._audio.segment(
                req.audio_path,
                req.mime_type,
                req.max_segment_duration,
                on_progress=lambda fraction: self._report(
                    run, "splitting", 10 + fraction * 20, "Splitting audio into segments"
                ),
            )
            total_duration = segments[-1].end_time_seconds if segments else 0.0

            # 3. Transcribe each chunk in order
            try:
                if len(segments) == 1:
                    logger.info("Audio fits in a single request")
                    self._report(run, "transcribing", 30, "Transcribing audio")
                    run.merged.extend(self._transcribe_segment(segments[0], req.options))
                else:
                    logger.info(f"Transcribing {len(segments)} segments sequentially")
                    for segment in segments:
                        self._report(
                            run, "transcribing",
                            30 + (segment.index / len(segments)) * 60,
                            f"Transcribing segment {segment.index + 1}/{len(segments)}",
                        )
                        try:
                            chunk_segments = self._transcribe_segment(segment, req.options)
                        finally:
                            self._audio.release(segment)
                        run.merged.extend(self._rebase(chunk_segments, segment.start_time_seconds))
            finally:
                for segment in segments:
                    self._audio.release(segment)

        # 4. Merge is the ordered concatenation above; 5. attach metadata
        self._report(run, "merging", 95, "Merging transcript")
        result = TranscriptionResult(
            segments=run.merged,
            metadata=TranscriptionMetadata(
                duration=format_timestamp(total_duration),
                speaker_count=req.options.speaker_count,
                processed_at=datetime.now(timezone.utc).isoformat(),
            ),
        )
        self._report(run, "done", 100, f"{len(result.segments)} segments")
        return result

    def _transcribe_segment(
        self, segment: AudioSegment, options: TranscriptionOptions
    ) -> list[TranscriptSegment]:
        audio_bytes = Path(segment.path).read_bytes()
        logger.debug(
            f"Segment {segment.index}: {segment.duration_seconds:.0f}s, "
            f"{len(audio_bytes)} bytes -> {self._transcription.model_name()}"
        )
        raw_text = self._transcription.transcribe(
            audio_bytes,
            segment.mime_type,
            build_user_prompt(options.speaker_count),
            system_prompt=options.system_prompt,
        )
        chunk_segments = normalize(raw_text, options.speaker_count)
        logger.info(f"Segment {segment.index}: {len(chunk_segments)} transcript segments")
        return chunk_segments

    @staticmethod
    def _rebase(segments: list[TranscriptSegment], offset_seconds: float) -> list[TranscriptSegment]:
        if offset_seconds <= 0:
            return segments
        return [
            TranscriptSegment(
                speaker=seg.speaker,
                timestamp=rebase_timestamp(seg.timestamp, offset_seconds),
                text=seg.text,
            )
            for seg in segments
        ]

    def _report(self, run: _RunState, stage: str, percent: float, detail: str) -> None:
        self._progress.report(run.job_id, stage, percent, detail)
        if run.on_progress:
            run.on_progress(percent, detail)
