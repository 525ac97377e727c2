"""
HTTP client for the upload server's photo endpoints.
"""

from typing import Any, Dict, List, Optional

import requests

from photoframe.common.errors import PhotoFetchError, PhotoSourceError
from photoframe.common.logger import setup_logger

logger = setup_logger(__name__)


class PhotoClient:
    """Client for the upload server (list, download, delete, health)."""

    # Request timeout in seconds
    REQUEST_TIMEOUT = 10

    # Download timeout in seconds (for large photos)
    DOWNLOAD_TIMEOUT = 60

    def __init__(
        self,
        base_url: str,
        timeout: float = REQUEST_TIMEOUT,
        download_timeout: float = DOWNLOAD_TIMEOUT,
        session: Optional[requests.Session] = None
    ):
        """
        Args:
            base_url: Server origin, e.g. http://localhost:3000
            timeout: Timeout for API calls
            download_timeout: Timeout for photo downloads
            session: Optional requests session (shared connection pool)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.download_timeout = download_timeout
        self._session = session or requests.Session()

    @property
    def upload_url(self) -> str:
        """URL of the guest upload page (the QR code target)."""
        return f"{self.base_url}/"

    def list_photos(self) -> List[Dict[str, Any]]:
        """
        Fetch the current photo list.

        Returns:
            List of photo entries ({url, file?, lastModified?})

        Raises:
            PhotoSourceError: If the server is unreachable or the response
                is not a JSON array
        """
        url = f"{self.base_url}/photos"
        try:
            response = self._session.get(url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise PhotoSourceError(f"Photo list unavailable: {e}") from e
        except ValueError as e:
            raise PhotoSourceError(f"Photo list is not valid JSON: {e}") from e

        if not isinstance(data, list):
            raise PhotoSourceError(
                f"Photo list must be a JSON array, got {type(data).__name__}"
            )

        entries = [entry for entry in data if isinstance(entry, dict)]
        if len(entries) != len(data):
            logger.warning("Dropped %d malformed photo entries", len(data) - len(entries))
        return entries

    def fetch_content(self, url: str) -> bytes:
        """
        Download the binary content of a photo.

        Raises:
            PhotoFetchError: On network failure, HTTP error or empty body
        """
        try:
            response = self._session.get(url, timeout=self.download_timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise PhotoFetchError(url, str(e)) from e

        content = response.content
        if not content:
            raise PhotoFetchError(url, "empty response body")
        return content

    def delete_all(self) -> Dict[str, Any]:
        """
        Ask the server to delete every stored photo.

        Returns:
            Server reply ({ok, message|error}); {ok: False, error} on network failure
        """
        try:
            response = self._session.delete(
                f"{self.base_url}/delete_all",
                timeout=self.timeout
            )
            data = response.json()
        except requests.exceptions.RequestException as e:
            logger.error("Delete-all request failed: %s", e)
            return {'ok': False, 'error': str(e)}
        except ValueError:
            return {'ok': False, 'error': f"Unexpected response ({response.status_code})"}

        if not isinstance(data, dict):
            return {'ok': False, 'error': f"Unexpected response ({response.status_code})"}
        return data

    def health(self) -> Optional[Dict[str, Any]]:
        """Get the server health document, or None if unreachable."""
        try:
            response = self._session.get(f"{self.base_url}/health", timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.debug("Health check failed: %s", e)
            return None

    def __repr__(self) -> str:
        """String representation."""
        return f"PhotoClient(base_url={self.base_url})"
