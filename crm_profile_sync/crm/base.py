"""
Base CRM API client and error taxonomy.

Maps HTTP failures onto the outcomes the sync engine distinguishes: a missing
record, an ambiguous e-mail match, bad credentials and every other transport
failure.
"""

import logging
from typing import Dict, Any, Optional

from crm_profile_sync.http_client import JSONHTTPClient, HTTPClientError

logger = logging.getLogger(__name__)


class CRMAPIError(Exception):
    """Base exception for CRM API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CRMNotFoundError(CRMAPIError):
    """The requested record does not exist (HTTP 404)."""
    pass


class CRMBadRequestError(CRMAPIError):
    """The CRM rejected the query (HTTP 400)."""
    pass


class AmbiguousMatchError(CRMBadRequestError):
    """More than one record shares the e-mail address that was queried."""
    pass


class CRMTransportError(CRMAPIError):
    """Network failure, timeout, unreadable body or unexpected HTTP status."""
    pass


class CRMAuthenticationError(CRMTransportError):
    """Raised when the access token is rejected (HTTP 401/403)."""
    pass


class CRMAPIBase(JSONHTTPClient):
    """
    CRM REST client with bearer-token authentication.

    Subclasses build the endpoint-specific operations on top of ``request``.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize CRM API client.

        Args:
            config: The ``crm`` configuration section
        """
        self.config = config
        self.access_token = config['access_token']

        super().__init__(
            name=config.get('name', 'CRM'),
            base_url=config['api_uri'],
            headers={'Authorization': f"Bearer {self.access_token}"},
            verify_ssl=config.get('verify_ssl', True),
            truststore_file=config.get('truststore_file'),
            timeout=config.get('timeout_seconds', 30)
        )

    def request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None,
                query: Optional[Dict[str, Any]] = None,
                headers: Optional[Dict[str, str]] = None) -> Any:
        """
        Make a CRM API request.

        Raises:
            CRMNotFoundError: HTTP 404
            CRMBadRequestError: HTTP 400
            CRMAuthenticationError: HTTP 401 or 403
            CRMTransportError: Any other failure
        """
        try:
            return super().request(method, path, body=body, query=query, headers=headers)
        except HTTPClientError as e:
            status = e.status_code
            if status == 404:
                raise CRMNotFoundError(f"{method} {path}: not found", status_code=status) from e
            if status == 400:
                raise CRMBadRequestError(f"{method} {path}: bad request {e.body}", status_code=status) from e
            if status in (401, 403):
                raise CRMAuthenticationError(f"Authentication failed for {self.name}", status_code=status) from e
            raise CRMTransportError(f"Request failed for {self.name}: {e}", status_code=status) from e
