"""
Backup executor - orchestrates the complete backup workflow.

Workflow:
1. Log in to the UniFi controller
2. Trigger a backup on the controller
3. Download the backup (retried with backoff)
4. Stream it into the storage backend with progress reporting
5. Enforce the retention policy (failures here do not fail the run)
"""

import logging
from contextlib import ExitStack, closing
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..cancellation import CancellationToken
from ..config import Config
from ..controller import DownloadResponse, UniFiClient
from ..exceptions import CancellationError, TransientError
from .naming import generate_backup_filename
from .progress import ProgressReader, format_bytes
from .retention import clean_old_backups
from .retry import retry_with_backoff
from .storage import ObjectStore, open_store


logger = logging.getLogger(__name__)

LOGIN_TIMEOUT = 30
CREATE_BACKUP_TIMEOUT = 5 * 60


@dataclass
class BackupResult:
    """Outcome of one backup run."""

    status: str = 'running'
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    filename: Optional[str] = None
    size_bytes: Optional[int] = None
    expected_bytes: Optional[int] = None
    error_message: Optional[str] = None
    cleanup: Optional[Dict[str, Any]] = None
    logs: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == 'success'


class BackupExecutor:
    """
    Orchestrates one backup run against a controller and a store.
    """

    def __init__(
        self,
        config: Config,
        client: Optional[UniFiClient] = None,
        store_opener: Callable[[str], ObjectStore] = open_store,
        cancellation: Optional[CancellationToken] = None,
        log: Optional[logging.Logger] = None
    ):
        """
        Initialize backup executor.

        Args:
            config: Application configuration
            client: Controller client (default: built from config.unifi)
            store_opener: Callable turning a storage URL into an ObjectStore
            cancellation: Token for the whole run (default: never cancelled)
            log: Logger for run messages (default: module logger)
        """
        self.config = config
        self.client = client
        self.store_opener = store_opener
        self.cancellation = cancellation or CancellationToken()
        self.log = log or logger
        self.result = BackupResult()

    def execute(self) -> BackupResult:
        """
        Execute the backup run.

        Errors are not raised; they are recorded on the returned result.

        Returns:
            BackupResult with status 'success', 'failed' or 'cancelled'
        """
        self.result = BackupResult(status='running', started_at=datetime.now(timezone.utc))

        self._log(
            f"Starting UniFi backup (url={self.config.unifi.url}, site={self.config.unifi.site}, "
            f"include_days={self.config.unifi.include_days})"
        )

        try:
            self._execute_workflow()
            self.result.status = 'success'

        except CancellationError as e:
            self.result.status = 'cancelled'
            self.result.error_message = str(e)
            self._log(f"Backup cancelled: {e}", logging.ERROR)

        except Exception as e:
            self.result.status = 'failed'
            self.result.error_message = str(e)
            self._log(f"Backup failed: {e}", logging.ERROR)

        finally:
            self.result.completed_at = datetime.now(timezone.utc)

        return self.result

    def _execute_workflow(self):
        """Execute the main backup workflow steps."""
        client = self.client or self._create_client()

        # Step 1: Login
        login_token = self.cancellation.child(LOGIN_TIMEOUT)
        client.login(self.config.unifi.username, self.config.unifi.password, cancellation=login_token)

        # Step 2: Trigger backup
        backup_token = self.cancellation.child(CREATE_BACKUP_TIMEOUT)
        backup_url = client.create_backup(
            self.config.unifi.username,
            self.config.unifi.include_days,
            cancellation=backup_token
        )

        # Step 3: Download with retry; the deadline also bounds reading the body
        timeout = self.config.timeout_seconds
        download_token = self.cancellation.child(timeout if timeout > 0 else None)

        with ExitStack() as stack:
            download = self._download(client, backup_url, download_token)
            stack.callback(download.close)

            # Step 4: Store
            filename = generate_backup_filename()
            self.result.filename = filename
            self.result.expected_bytes = download.content_length

            store = stack.enter_context(closing(self.store_opener(self.config.storage.url)))

            reader = ProgressReader(download.body, download.content_length, cancellation=download_token)
            written = store.put(filename, reader)
            reader.finish()
            self.result.size_bytes = written

            expected = download.content_length
            if expected > 0 and written != expected:
                self._log(
                    f"Backup size mismatch (expected_bytes={expected}, written_bytes={written})",
                    logging.WARNING
                )

            self._log(
                f"Backup saved successfully (filename={filename}, size={format_bytes(written)}, "
                f"expected_bytes={expected})"
            )

            # Step 5: Retention
            if self.config.retention.keep_last > 0:
                self._cleanup(store)

    def _create_client(self) -> UniFiClient:
        return UniFiClient(
            self.config.unifi.url,
            site=self.config.unifi.site,
            verify_ssl=not self.config.unifi.insecure_skip_verify,
            timeout=self.config.timeout_seconds
        )

    def _download(self, client: UniFiClient, backup_url: str, token: CancellationToken) -> DownloadResponse:
        """
        Start the download, retrying transient failures.

        Raises:
            TransientError: If every attempt failed
            CancellationError: If cancelled or past the download deadline
        """
        return retry_with_backoff(
            lambda: client.download_backup(backup_url, cancellation=token),
            self.config.unifi.max_retries,
            cancellation=token,
            retry_on=(TransientError,),
            log=self.log
        )

    def _cleanup(self, store: ObjectStore):
        """Run retention; the backup already succeeded, so failures only warn."""
        try:
            self.result.cleanup = clean_old_backups(store, self.config.retention.keep_last, log=self.log)
        except CancellationError:
            raise
        except Exception as e:
            self._log(f"Failed to cleanup old backups: {e}", logging.WARNING)

    def _log(self, message: str, level: int = logging.INFO):
        """
        Log a message and keep it on the result.

        Args:
            message: Log message
            level: logging level
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.result.logs.append(f"[{timestamp}] {message}")
        self.log.log(level, message)


def execute_backup(
    config: Config,
    cancellation: Optional[CancellationToken] = None,
    client: Optional[UniFiClient] = None
) -> BackupResult:
    """
    Run one backup with the given configuration.

    Returns:
        BackupResult with execution results
    """
    executor = BackupExecutor(config, client=client, cancellation=cancellation)
    return executor.execute()
