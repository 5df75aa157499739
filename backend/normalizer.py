"""Normalization of raw model output into transcript segments.

The model is asked for JSON of the form
``{"segments": [{"speaker": ..., "timestamp": ..., "text": ...}]}``.
When it answers with anything else, a line scanner recovers what it can:
the last speaker and timestamp seen, plus all remaining text, merged into a
single segment. The fallback is deliberately lossy; multi-speaker plain text
collapses into one segment.
"""

import re
import json
import logging
import warnings
from enum import Enum
from typing import List, Optional

from domain.errors import NormalizationDegraded
from domain.models import TranscriptSegment

logger = logging.getLogger(__name__)

DEFAULT_SPEAKER = "Speaker 1"
DEFAULT_TIMESTAMP = "00:00"

_CODE_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)
_SPEAKER_RE = re.compile(r"^\s*((?:Speaker|Person)\s*\d+|S\d+)\b\s*:?\s*", re.IGNORECASE)
_TIMESTAMP_RE = re.compile(r"\[?(\d{1,3}:\d{2}(?::\d{2})?)\]?")
_NOISE_RE = re.compile(r'^[\s{}\[\]",]*$')


class ScanState(Enum):
    SEEK_SPEAKER = "seek_speaker"
    SEEK_TIMESTAMP = "seek_timestamp"
    ACCUMULATE = "accumulate"


def strip_code_fences(text: str) -> str:
    match = _CODE_FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def parse_structured(raw_text: str) -> List[TranscriptSegment]:
    """Parse the preferred JSON shape. Raises ValueError on anything else."""
    data = json.loads(strip_code_fences(raw_text))
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")

    raw_segments = data.get("segments") or []
    if not isinstance(raw_segments, list):
        raise ValueError("'segments' must be a list")

    segments: List[TranscriptSegment] = []
    for raw in raw_segments:
        if not isinstance(raw, dict):
            raise ValueError("Each segment must be an object")
        segments.append(TranscriptSegment(
            speaker=str(raw.get("speaker") or DEFAULT_SPEAKER),
            timestamp=str(raw.get("timestamp") or DEFAULT_TIMESTAMP),
            text=str(raw.get("text") or ""),
        ))
    return segments


class LineScanner:
    """Heuristic line scanner used when the model output is not JSON.

    Each line walks SEEK_SPEAKER -> SEEK_TIMESTAMP -> ACCUMULATE. A speaker
    that follows a leading timestamp (``[00:05] Speaker 2: ...``) is picked
    up on the way to ACCUMULATE.
    """

    def __init__(self):
        self.speaker = DEFAULT_SPEAKER
        self.timestamp = DEFAULT_TIMESTAMP
        self.parts: List[str] = []
        self.state = ScanState.SEEK_SPEAKER

    def feed(self, line: str) -> None:
        if not line.strip() or _NOISE_RE.match(line):
            return

        remaining = line.strip()
        found_speaker = False
        self.state = ScanState.SEEK_SPEAKER

        while True:
            if self.state is ScanState.SEEK_SPEAKER:
                match = _SPEAKER_RE.match(remaining)
                if match:
                    self.speaker = match.group(1)
                    remaining = remaining[match.end():]
                    found_speaker = True
                self.state = ScanState.SEEK_TIMESTAMP

            elif self.state is ScanState.SEEK_TIMESTAMP:
                match = _TIMESTAMP_RE.search(remaining)
                if match:
                    self.timestamp = match.group(1)
                    remaining = (remaining[:match.start()] + remaining[match.end():]).strip()
                    if not found_speaker:
                        speaker_match = _SPEAKER_RE.match(remaining)
                        if speaker_match:
                            self.speaker = speaker_match.group(1)
                            remaining = remaining[speaker_match.end():]
                self.state = ScanState.ACCUMULATE

            else:
                text = remaining.strip()
                if text:
                    self.parts.append(text)
                return

    def result(self) -> List[TranscriptSegment]:
        if not self.parts:
            return []
        return [TranscriptSegment(
            speaker=self.speaker,
            timestamp=self.timestamp,
            text="\n".join(self.parts),
        )]


def parse_fallback(raw_text: str) -> List[TranscriptSegment]:
    scanner = LineScanner()
    for line in (raw_text or "").splitlines():
        scanner.feed(line)
    return scanner.result()


def normalize(raw_text: str, speaker_count_hint: Optional[int] = None) -> List[TranscriptSegment]:
    """Turn raw model text into transcript segments.

    Args:
        raw_text: Text returned by the model.
        speaker_count_hint: Speaker count the caller expects; only logged.

    Returns:
        Segments in model order. Empty when nothing could be recovered.
    """
    try:
        segments = parse_structured(raw_text)
        logger.debug(f"Parsed {len(segments)} structured segments (hint: {speaker_count_hint} speakers)")
        return segments
    except (ValueError, TypeError, RecursionError) as e:
        logger.warning(f"Model output was not structured JSON ({e}); using text fallback")

    warnings.warn("Transcript parsed with heuristic text fallback", NormalizationDegraded, stacklevel=2)
    return parse_fallback(raw_text)
