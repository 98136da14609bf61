"""
Backup filename generation and parsing.

Format: unifi-backup-YYYY-MM-DDTHH-MM-SSZ.unf

The timestamp is UTC with hyphens instead of colons, so names are valid on
SMB/CIFS shares and Windows filesystems. The filename is the only identity
and ordering a backup has: there is no manifest. Two backups taken in the
same second get the same name and the second one overwrites the first.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..exceptions import FormatError


BACKUP_PREFIX = 'unifi-backup-'
BACKUP_SUFFIX = '.unf'
TIME_FORMAT = '%Y-%m-%dT%H-%M-%SZ'

# strptime accepts single-digit fields; the stored format never has them
_TIMESTAMP_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}Z$')


@dataclass(frozen=True)
class BackupRecord:
    """A backup object as seen in a store listing."""

    filename: str
    timestamp: datetime

    @classmethod
    def from_filename(cls, filename: str) -> 'BackupRecord':
        return cls(filename=filename, timestamp=parse_backup_filename(filename))


def generate_backup_filename(now: Optional[datetime] = None) -> str:
    """
    Generate a backup filename for the given instant.

    Args:
        now: Timestamp to encode (default: current time). Naive datetimes
            are taken to be UTC.

    Returns:
        Filename such as unifi-backup-2025-12-05T00-57-39Z.unf
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    timestamp = now.astimezone(timezone.utc).strftime(TIME_FORMAT)
    return f"{BACKUP_PREFIX}{timestamp}{BACKUP_SUFFIX}"


def parse_backup_filename(filename: str) -> datetime:
    """
    Extract the timestamp from a backup filename.

    Args:
        filename: Name such as unifi-backup-2025-12-05T00-57-39Z.unf

    Returns:
        Timezone-aware UTC datetime

    Raises:
        FormatError: If the prefix or suffix is missing or the timestamp
            does not match the expected format
    """
    if not filename.startswith(BACKUP_PREFIX) or not filename.endswith(BACKUP_SUFFIX):
        raise FormatError(
            f"filename {filename!r} does not match expected format {BACKUP_PREFIX}*{BACKUP_SUFFIX}"
        )

    timestamp_str = filename[len(BACKUP_PREFIX):len(filename) - len(BACKUP_SUFFIX)]

    if not _TIMESTAMP_PATTERN.match(timestamp_str):
        raise FormatError(f"failed to parse timestamp from filename {filename!r}")

    try:
        timestamp = datetime.strptime(timestamp_str, TIME_FORMAT)
    except ValueError as e:
        raise FormatError(f"failed to parse timestamp from filename {filename!r}: {e}") from e

    return timestamp.replace(tzinfo=timezone.utc)
