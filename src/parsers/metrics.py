"""Indexer pipeline metrics: log traffic, decode outcomes, store writes.

Lock-guarded counters that accumulate during runtime and are read by
the stats reporter.
"""

import time
from dataclasses import asdict, dataclass
from threading import Lock


@dataclass
class PipelineCounters:
    log_batches: int = 0
    events_matched: int = 0
    decode_errors: int = 0
    metadata_misses: int = 0
    event_failures: int = 0
    primary_commits: int = 0
    primary_failures: int = 0
    secondary_written: int = 0
    secondary_requeued: int = 0


class IndexerMetrics:
    """Accumulator shared by the listener, processor and writer.

    Owned by whoever wires the pipeline; never a module-level singleton.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._counters = PipelineCounters()
        self._start_time: float = time.monotonic()

    def _bump(self, name: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self._counters, name, getattr(self._counters, name) + amount)

    def record_log_batch(self) -> None:
        self._bump("log_batches")

    def record_event_matched(self) -> None:
        self._bump("events_matched")

    def record_decode_error(self) -> None:
        self._bump("decode_errors")

    def record_metadata_miss(self) -> None:
        self._bump("metadata_misses")

    def record_event_failure(self) -> None:
        self._bump("event_failures")

    def record_primary_commit(self) -> None:
        self._bump("primary_commits")

    def record_primary_failure(self) -> None:
        self._bump("primary_failures")

    def record_secondary_flush(self, written: int, requeued: int) -> None:
        with self._lock:
            self._counters.secondary_written += written
            self._counters.secondary_requeued += requeued

    @property
    def new_tokens_count(self) -> int:
        """Tokens committed to the primary store since startup."""
        with self._lock:
            return self._counters.primary_commits

    def get_summary(self) -> dict:
        """Return a snapshot of all counters."""
        with self._lock:
            summary: dict = asdict(self._counters)
            summary["uptime_sec"] = round(time.monotonic() - self._start_time)
            return summary

    def format_stats_line(self, queue_size: int = 0) -> str:
        """One-line summary for the stats reporter."""
        with self._lock:
            c = self._counters
            uptime = time.monotonic() - self._start_time
            rate = c.primary_commits / max(uptime / 60, 1)
            return (
                f"batches={c.log_batches} matched={c.events_matched} "
                f"new={c.primary_commits} rate={rate:.1f}/min "
                f"decode_err={c.decode_errors} meta_miss={c.metadata_misses} "
                f"primary_fail={c.primary_failures} "
                f"secondary={c.secondary_written}/{c.secondary_requeued} "
                f"queue={queue_size}"
            )
