"""Domain <-> DTO mappers and download renderers.

Converts between the domain TranscriptionResult and the API response DTO,
and renders transcripts as the plain-text and JSON download formats.
"""

import json
import os
import re
import unicodedata
from typing import Any
from urllib.parse import quote

from domain.models import TranscriptSegment, TranscriptionMetadata, TranscriptionResult
from models import TranscriptSegmentDTO, TranscriptionMetadataDTO, TranscriptionResponse


def segment_to_dto(seg: TranscriptSegment) -> TranscriptSegmentDTO:
    return TranscriptSegmentDTO(speaker=seg.speaker, timestamp=seg.timestamp, text=seg.text)


def dto_to_segment(dto: TranscriptSegmentDTO) -> TranscriptSegment:
    return TranscriptSegment(speaker=dto.speaker, timestamp=dto.timestamp, text=dto.text)


def result_to_dto(result: TranscriptionResult) -> TranscriptionResponse:
    """Convert a domain TranscriptionResult to the response DTO."""
    meta = result.metadata
    return TranscriptionResponse(
        segments=[segment_to_dto(seg) for seg in result.segments],
        metadata=TranscriptionMetadataDTO(
            duration=meta.duration,
            speakerCount=meta.speaker_count,
            processedAt=meta.processed_at,
        ),
    )


def dto_to_result(dto: TranscriptionResponse) -> TranscriptionResult:
    """Convert a response DTO back to the domain TranscriptionResult."""
    return TranscriptionResult(
        segments=[dto_to_segment(seg) for seg in dto.segments],
        metadata=TranscriptionMetadata(
            duration=dto.metadata.duration,
            speaker_count=dto.metadata.speakerCount,
            processed_at=dto.metadata.processedAt,
        ),
    )


def export_filename(audio_filename: str, extension: str) -> str:
    """``meeting.mp3`` -> ``meeting_transcription.txt``."""
    stem = os.path.splitext(os.path.basename(audio_filename or ""))[0]
    return f"{stem or 'audio'}_transcription.{extension}"


def content_disposition(filename: str) -> str:
    """Attachment header value with an ASCII fallback and an RFC 5987 UTF-8 name."""
    ascii_name = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    ascii_name = re.sub(r'[^A-Za-z0-9._ -]', "_", ascii_name).strip()
    if not ascii_name or ascii_name.startswith("_transcription."):
        ascii_name = "audio" + ascii_name
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename, safe='')}"


def render_text(result: TranscriptionResult) -> str:
    """One ``[timestamp] speaker: text`` block per segment, blank-line separated."""
    return "\n\n".join(
        f"[{seg.timestamp}] {seg.speaker}: {seg.text}" for seg in result.segments
    )


def group_by_speaker(segments: list[TranscriptSegment]) -> list[dict[str, Any]]:
    """Group segments per speaker, speakers ordered by first appearance."""
    speakers: dict[str, list[dict[str, str]]] = {}
    for seg in segments:
        speakers.setdefault(seg.speaker, []).append(
            {"timestamp": seg.timestamp, "text": seg.text}
        )
    return [
        {"speaker_id": speaker, "segments": entries}
        for speaker, entries in speakers.items()
    ]


def render_json(result: TranscriptionResult, audio_filename: str) -> str:
    dto = result_to_dto(result)
    payload = {
        "file": audio_filename,
        "metadata": dto.metadata.model_dump(exclude_none=True),
        "speakers": group_by_speaker(result.segments),
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)
