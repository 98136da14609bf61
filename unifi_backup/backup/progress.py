"""
Progress tracking for streamed downloads.

ProgressReader wraps a file-like object and reports throughput while the
backup flows from the controller into a storage backend.
"""

import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, BinaryIO, Callable, Dict, Optional


logger = logging.getLogger(__name__)

# Report progress every 10 MB
PROGRESS_LOG_INTERVAL_MB = 10

_BYTE_UNITS = ['KB', 'MB', 'GB', 'TB']
_SPEED_UNITS = ['KB/s', 'MB/s', 'GB/s', 'TB/s']


def format_bytes(num_bytes: int) -> str:
    """
    Convert a byte count to a human-readable string.

    Args:
        num_bytes: Number of bytes

    Returns:
        String such as '512 B' or '1.50 MB'
    """
    unit = 1024
    if num_bytes < unit:
        return f"{num_bytes} B"

    div, exp = unit, 0
    n = num_bytes // unit
    while n >= unit and exp < len(_BYTE_UNITS) - 1:
        div *= unit
        exp += 1
        n //= unit

    return f"{num_bytes / div:.2f} {_BYTE_UNITS[exp]}"


def format_speed(bytes_per_second: float) -> str:
    """
    Convert a transfer rate to a human-readable string.

    Args:
        bytes_per_second: Average throughput

    Returns:
        String such as '900 B/s' or '12.34 MB/s'
    """
    unit = 1024.0
    if bytes_per_second < unit:
        return f"{bytes_per_second:.0f} B/s"

    div, exp = unit, 0
    n = bytes_per_second / unit
    while n >= unit and exp < len(_SPEED_UNITS) - 1:
        div *= unit
        exp += 1
        n /= unit

    return f"{bytes_per_second / div:.2f} {_SPEED_UNITS[exp]}"


def format_duration(seconds: float) -> str:
    """Format seconds rounded to the nearest second, e.g. '0:01:05'."""
    return str(timedelta(seconds=round(seconds)))


@dataclass(frozen=True)
class ProgressSnapshot:
    """One progress observation."""

    bytes_read: int
    total: int
    elapsed: float
    speed: float
    percentage: Optional[float] = None
    remaining: Optional[float] = None
    final: bool = False

    def as_dict(self) -> Dict[str, Any]:
        """Human-readable fields, omitting the ones that are unknown."""
        fields = {
            'downloaded': format_bytes(self.bytes_read),
            'elapsed': format_duration(self.elapsed),
            'speed': format_speed(self.speed),
        }
        if self.percentage is not None:
            fields['total'] = format_bytes(self.total)
            fields['percentage'] = f"{self.percentage:.1f}%"
        if self.remaining is not None:
            fields['estimated_remaining'] = format_duration(self.remaining)
        return fields


def log_progress(snapshot: ProgressSnapshot):
    """Default observer: log the snapshot at INFO."""
    details = ', '.join(f"{key}={value}" for key, value in snapshot.as_dict().items())
    logger.info(f"Download progress ({details})")


class ProgressReader:
    """
    File-like wrapper that counts bytes and reports progress.

    A snapshot is emitted every time another interval's worth of bytes has
    been read, and once more when the underlying stream is exhausted or
    finish() is called, so even a transfer smaller than the interval
    produces exactly one final observation.
    """

    def __init__(
        self,
        stream: BinaryIO,
        total_size: int,
        interval_bytes: int = PROGRESS_LOG_INTERVAL_MB * 1024 * 1024,
        observer: Optional[Callable[[ProgressSnapshot], None]] = None,
        cancellation: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize progress reader.

        Args:
            stream: Underlying file-like object with read(size)
            total_size: Expected size in bytes (<= 0 when unknown)
            interval_bytes: Bytes between progress observations
            observer: Callable receiving each ProgressSnapshot (default: log it)
            cancellation: Optional check called before every read; raises
                to abort the transfer
            clock: Monotonic clock, injectable for tests
        """
        self.stream = stream
        self.total = total_size
        self.interval_bytes = interval_bytes
        self.observer = observer or log_progress
        self.cancellation = cancellation
        self._clock = clock

        self.bytes_read = 0
        self.last_logged = 0
        self.start_time = clock()
        self.last_log_time = self.start_time
        self.finished = False

    def read(self, size: int = -1) -> bytes:
        if self.cancellation is not None:
            self.cancellation()

        data = self.stream.read(size)
        self.bytes_read += len(data)

        at_eof = not data and size != 0
        if at_eof:
            self.finish()
        elif self.bytes_read - self.last_logged >= self.interval_bytes:
            self._emit(final=False)

        return data

    def finish(self):
        """
        Emit the final observation if it has not been emitted yet.

        Upload drivers that stop after a short read never make the empty
        read that marks EOF, so callers finish the reader once the store
        has accepted the stream.
        """
        if not self.finished:
            self.finished = True
            self._emit(final=True)

    def snapshot(self, final: bool = False) -> ProgressSnapshot:
        """Build a snapshot of the current transfer state."""
        elapsed = self._clock() - self.start_time
        speed = self.bytes_read / elapsed if elapsed > 0 else 0.0

        percentage = None
        remaining = None
        if self.total > 0:
            percentage = self.bytes_read / self.total * 100
            if speed > 0:
                remaining = max(self.total - self.bytes_read, 0) / speed

        return ProgressSnapshot(
            bytes_read=self.bytes_read,
            total=self.total,
            elapsed=elapsed,
            speed=speed,
            percentage=percentage,
            remaining=remaining,
            final=final
        )

    def _emit(self, final: bool):
        self.observer(self.snapshot(final=final))
        self.last_logged = self.bytes_read
        self.last_log_time = self._clock()

    def close(self):
        close = getattr(self.stream, 'close', None)
        if close is not None:
            close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
