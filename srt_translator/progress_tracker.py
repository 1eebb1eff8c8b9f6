"""Run-level progress aggregation."""

from typing import Any, Dict

from .models import RunStatus


class ProgressTracker:
    """Counts translated segments, completed groups and retries for one run.

    Counters only ever increase. All updates come from the run's single
    sequential control flow, so no locking is done here.
    """

    def __init__(self):
        self.status = RunStatus.PENDING
        self.total_segments = 0
        self.total_groups = 0
        self.translated_segments = 0
        self.completed_groups = 0
        self.retries = 0
        self.received_chunks = 0

    def start(self, total_segments: int, total_groups: int) -> None:
        self.total_segments = total_segments
        self.total_groups = total_groups
        self.status = RunStatus.RUNNING

    def record_retry(self, attempt: int = 0, error: Exception = None) -> None:
        self.retries += 1

    def record_group_completed(self, segment_count: int) -> None:
        self.completed_groups += 1
        self.translated_segments += segment_count

    def record_chunk(self) -> None:
        self.received_chunks += 1

    def mark_done(self) -> None:
        self.status = RunStatus.DONE

    def mark_failed(self) -> None:
        self.status = RunStatus.FAILED

    @property
    def percent_complete(self) -> float:
        if not self.total_segments:
            return 0.0
        return round(self.translated_segments / self.total_segments * 100, 1)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "total_segments": self.total_segments,
            "translated_segments": self.translated_segments,
            "total_groups": self.total_groups,
            "completed_groups": self.completed_groups,
            "retries": self.retries,
            "received_chunks": self.received_chunks,
            "percent_complete": self.percent_complete,
        }
