from typing import List, Literal, Optional
from pydantic import BaseModel, Field


class TranscriptSegmentDTO(BaseModel):
    """A speaker turn in the transcription"""
    speaker: str
    timestamp: str
    text: str


class TranscriptionMetadataDTO(BaseModel):
    duration: Optional[str] = None
    speakerCount: int = Field(ge=1)
    processedAt: str


class TranscriptionResponse(BaseModel):
    """Response format for transcription"""
    segments: List[TranscriptSegmentDTO] = []
    metadata: TranscriptionMetadataDTO


class ValidateKeyRequest(BaseModel):
    apiKey: Optional[str] = None


class ValidateKeyResponse(BaseModel):
    valid: bool


class ExportRequest(BaseModel):
    """A transcript to render as a downloadable file."""
    result: TranscriptionResponse
    fileName: str = "audio"
    format: Literal["txt", "json"] = "txt"
