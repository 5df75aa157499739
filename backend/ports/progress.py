"""ProgressPort — sink for per-job transcription progress."""

from abc import ABC, abstractmethod


class ProgressPort(ABC):
    @abstractmethod
    def report(self, job_id: str, stage: str, percent: float, message: str) -> None:
        """Record that job_id reached percent (0-100).

        stage: initializing, analyzing, splitting, transcribing, merging, done.
        """
