"""
Backup module for unifi-backup.

This module handles the core backup functionality including:
- Backup filename generation and parsing
- Storage backends (local, S3, GCS, SMB)
- Download progress tracking
- Retry with backoff
- Retention policy enforcement

The pipeline itself lives in unifi_backup.backup.executor.
"""

from .naming import BackupRecord, generate_backup_filename, parse_backup_filename
from .storage import ObjectStore, FileStore, S3Store, GCSStore, open_store
from .progress import ProgressReader, format_bytes
from .retry import retry_with_backoff
from .retention import RetentionManager, clean_old_backups

__all__ = [
    'BackupRecord',
    'generate_backup_filename',
    'parse_backup_filename',
    'ObjectStore',
    'FileStore',
    'S3Store',
    'GCSStore',
    'open_store',
    'ProgressReader',
    'format_bytes',
    'retry_with_backoff',
    'RetentionManager',
    'clean_old_backups'
]
