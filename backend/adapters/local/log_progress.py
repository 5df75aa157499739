"""LogProgressAdapter — writes job progress to the application log.

Stage changes are logged at INFO; repeated updates within a stage (one per
chunk while transcribing) drop to DEBUG so long recordings do not flood the
log.
"""

import logging
import threading
from typing import Dict

from ports.progress import ProgressPort

logger = logging.getLogger(__name__)


class LogProgressAdapter(ProgressPort):
    def __init__(self):
        self._stages: Dict[str, str] = {}
        self._lock = threading.Lock()

    def report(self, job_id: str, stage: str, percent: float, message: str) -> None:
        with self._lock:
            changed = self._stages.get(job_id) != stage
            if stage == "done":
                self._stages.pop(job_id, None)
            else:
                self._stages[job_id] = stage

        level = logging.INFO if changed else logging.DEBUG
        logger.log(level, f"[{job_id}] {percent:3.0f}% {stage} - {message}")
