"""
UniFi Network controller API client.

Only the three calls the backup pipeline needs:
1. login - start a cookie-authenticated session
2. create_backup - ask the controller to build a .unf backup
3. download_backup - stream the backup file
"""

import logging
from dataclasses import dataclass
from typing import BinaryIO, Optional

import requests
import urllib3

from .cancellation import CancellationToken
from .exceptions import ControllerError, TransientError
from .backup.progress import format_bytes


logger = logging.getLogger(__name__)

# Used when no explicit timeout is configured
DEFAULT_HTTP_TIMEOUT = 10 * 60


@dataclass
class DownloadResponse:
    """
    Backup file stream plus its expected size.

    body must be closed by the caller when done reading. content_length is
    0 when the controller did not announce a size.
    """

    body: BinaryIO
    content_length: int
    response: Optional[requests.Response] = None

    def close(self):
        if self.response is not None:
            self.response.close()
        else:
            self.body.close()


class UniFiClient:
    """
    Client for a UniFi Network controller.

    Create it with the controller root URL (e.g. https://192.168.1.1:8443),
    call login() once, then create_backup() and download_backup().
    """

    def __init__(
        self,
        base_url: str,
        site: str = 'default',
        verify_ssl: bool = True,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize controller client.

        Args:
            base_url: Controller root URL
            site: UniFi site name
            verify_ssl: Verify the controller's TLS certificate
            timeout: Upper bound in seconds for any single HTTP call
            session: Pre-built requests session (keeps cookies between calls)
        """
        self.base_url = base_url.rstrip('/')
        self.site = site
        self.timeout = timeout if timeout and timeout > 0 else DEFAULT_HTTP_TIMEOUT
        self.session = session or requests.Session()
        self.session.verify = verify_ssl

        if not verify_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def _request_timeout(self, cancellation: Optional[CancellationToken]) -> float:
        """Timeout for the next request, checking cancellation first."""
        if cancellation is None:
            return self.timeout
        cancellation.check()
        remaining = cancellation.remaining()
        if remaining is None:
            return self.timeout
        return min(self.timeout, remaining)

    def login(self, username: str, password: str, cancellation: Optional[CancellationToken] = None):
        """
        Authenticate with the controller.

        Raises:
            ControllerError: If the controller rejects the credentials
            TransientError: If the controller cannot be reached
            CancellationError: If cancelled before the request
        """
        logger.info(f"Logging in to UniFi controller (username={username})")
        timeout = self._request_timeout(cancellation)

        try:
            response = self.session.post(
                f"{self.base_url}/api/login",
                json={'username': username, 'password': password},
                timeout=timeout
            )
        except requests.RequestException as e:
            raise TransientError(f"login request failed: {e}") from e

        with response:
            if response.status_code != 200:
                raise ControllerError(f"login failed with status {response.status_code}: {response.text}")

            result = self._decode(response, 'login')

        meta = result.get('meta') or {}
        if meta.get('rc') != 'ok':
            raise ControllerError(f"login failed: {meta.get('msg', '')}")

        logger.info("Successfully logged in")

    def create_backup(
        self,
        username: str,
        include_days: int,
        cancellation: Optional[CancellationToken] = None
    ) -> str:
        """
        Trigger a backup and return its download URL.

        Args:
            username: Logged-in user, only used for the permission hint
            include_days: Days of history to include (0 for configuration only)
            cancellation: Token bounding the request

        Returns:
            Absolute URL of the backup file

        Raises:
            ControllerError: If the controller refuses or returns no URL
            TransientError: If the controller cannot be reached
        """
        logger.info(f"Triggering backup (include_days={include_days})")
        timeout = self._request_timeout(cancellation)

        try:
            response = self.session.post(
                f"{self.base_url}/api/s/{self.site}/cmd/backup",
                json={'cmd': 'backup', 'days': include_days},
                timeout=timeout
            )
        except requests.RequestException as e:
            raise TransientError(f"backup request failed: {e}") from e

        with response:
            result = self._decode(response, 'backup')

        meta = result.get('meta') or {}
        data = result.get('data') or []

        if meta.get('rc') != 'ok' or not data or not data[0].get('url'):
            if meta.get('msg') == 'api.err.NoPermission':
                logger.info(
                    f"Make sure the user '{username}' is an Administrator rather than just a Site Administrator"
                )
            raise ControllerError(
                f"backup failed: response_code={meta.get('rc')}, message={meta.get('msg')}, "
                f"data_length={len(data)}"
            )

        backup_url = self.base_url + data[0]['url']
        logger.info(f"Backup created successfully (url={backup_url})")
        return backup_url

    def download_backup(self, backup_url: str, cancellation: Optional[CancellationToken] = None) -> DownloadResponse:
        """
        Start downloading a backup file.

        Returns:
            DownloadResponse whose body streams the file

        Raises:
            TransientError: On network failure or a non-200 response
        """
        logger.info("Downloading backup file")
        timeout = self._request_timeout(cancellation)

        try:
            response = self.session.get(backup_url, stream=True, timeout=timeout)
        except requests.RequestException as e:
            raise TransientError(f"failed to download backup: {e}") from e

        if response.status_code != 200:
            body = response.text
            response.close()
            raise TransientError(f"download failed with status {response.status_code}: {body}")

        try:
            content_length = int(response.headers.get('Content-Length', 0))
        except ValueError:
            content_length = 0

        response.raw.decode_content = True
        logger.info(f"Backup download started (size={format_bytes(content_length)})")

        return DownloadResponse(body=response.raw, content_length=max(content_length, 0), response=response)

    @staticmethod
    def _decode(response: requests.Response, action: str) -> dict:
        try:
            return response.json()
        except ValueError as e:
            raise ControllerError(f"failed to decode {action} response: {e}") from e
