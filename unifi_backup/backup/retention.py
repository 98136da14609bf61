"""
Retention policy enforcement for backups.

Keeps the newest keep_last backups in a store and deletes the rest. Backups
are identified and ordered purely by the timestamp in their filename.
"""

import logging
from typing import Any, Dict, List, Optional

from ..exceptions import FormatError, StorageError
from .naming import BackupRecord
from .storage import ObjectStore


logger = logging.getLogger(__name__)


class RetentionManager:
    """
    Enforces a keep-last-N policy on one object store.

    Objects whose names do not parse as backups are left alone. Deletion is
    best-effort: a failed delete is recorded and the remaining candidates
    are still processed.
    """

    def __init__(self, store: ObjectStore, keep_last: int, log: Optional[logging.Logger] = None):
        """
        Initialize retention manager.

        Args:
            store: Store to clean up
            keep_last: Number of newest backups to keep (<= 0 keeps everything)
            log: Logger for progress reporting (default: module logger)
        """
        self.store = store
        self.keep_last = keep_last
        self.log = log or logger

    def collect_backups(self) -> Dict[str, List]:
        """
        List the store and parse every key.

        Returns:
            {'backups': [BackupRecord newest first], 'skipped': [keys]}

        Raises:
            StorageError: If listing fails
        """
        backups = []
        skipped = []

        for key in self.store.list():
            try:
                backups.append(BackupRecord.from_filename(key))
            except FormatError as e:
                self.log.debug(f"Skipping file with unparseable format: {key} ({e})")
                skipped.append(key)

        backups.sort(key=lambda record: (record.timestamp, record.filename), reverse=True)
        return {'backups': backups, 'skipped': skipped}

    def enforce(self) -> Dict[str, Any]:
        """
        Delete every backup beyond the newest keep_last.

        Returns:
            Dict with summary of the cleanup:
            {
                'deleted': List[str],
                'failed': Dict[str, str],
                'skipped': List[str],
                'deleted_count': int,
                'failed_count': int,
                'remaining_count': int
            }

        Raises:
            StorageError: If the store cannot be listed
        """
        summary = {
            'deleted': [],
            'failed': {},
            'skipped': [],
            'deleted_count': 0,
            'failed_count': 0,
            'remaining_count': 0
        }

        if self.keep_last <= 0:
            self.log.info("Retention: keep_last not set, skipping cleanup")
            return summary

        self.log.info(f"Checking for old backups to cleanup (keep_last={self.keep_last})")

        collected = self.collect_backups()
        backups = collected['backups']
        summary['skipped'] = collected['skipped']

        if len(backups) <= self.keep_last:
            summary['remaining_count'] = len(backups)
            self.log.info(f"No cleanup needed (backup_count={len(backups)}, keep_last={self.keep_last})")
            return summary

        for record in backups[self.keep_last:]:
            self.log.info(f"Deleting old backup: {record.filename} ({record.timestamp.isoformat()})")
            try:
                self.store.delete(record.filename)
                summary['deleted'].append(record.filename)
            except StorageError as e:
                self.log.warning(f"Failed to delete backup {record.filename}: {e}")
                summary['failed'][record.filename] = str(e)

        summary['deleted_count'] = len(summary['deleted'])
        summary['failed_count'] = len(summary['failed'])
        summary['remaining_count'] = self.keep_last + summary['failed_count']

        self.log.info(
            f"Cleanup completed. "
            f"Deleted: {summary['deleted_count']}, "
            f"Failed: {summary['failed_count']}, "
            f"Remaining: {summary['remaining_count']}"
        )

        return summary


def clean_old_backups(store: ObjectStore, keep_last: int, log: Optional[logging.Logger] = None) -> Dict[str, Any]:
    """
    Enforce a keep-last-N retention policy on a store.

    Returns:
        Summary dict from RetentionManager.enforce()
    """
    manager = RetentionManager(store, keep_last, log=log)
    return manager.enforce()
