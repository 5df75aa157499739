"""Error taxonomy for the transcription pipeline.

Each hard failure carries the HTTP status the API boundary maps it to.
NormalizationDegraded is a warning category, not an error: the normalizer
emits it when it falls back to heuristic parsing and still returns a result.
"""


class TranscriberError(Exception):
    """Base exception for user-facing pipeline failures."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TranscriberError):
    """Raised when request fields are missing or invalid."""

    status_code = 400


class AuthError(TranscriberError):
    """Raised when the provider rejects the caller's API key."""

    status_code = 401


class RateLimitError(TranscriberError):
    """Raised when a caller exceeds the admission window."""

    status_code = 429


class DecodeError(TranscriberError):
    """Raised when the audio cannot be decoded to determine its duration."""


class SegmentationError(TranscriberError):
    """Raised when a chunk cannot be extracted from the audio."""


class TranscriptionProviderError(TranscriberError):
    """Raised on network, provider-side or quota failures."""


class NormalizationDegraded(UserWarning):
    """Model output was not structured JSON; heuristic parsing was used."""
