"""
Minimal JSON-over-HTTP client shared by the CRM, forum and avatar integrations.

Every request opens its own connection, so a client instance can be used from
several threads at once (the directory scan fetches pages concurrently).
"""

import json
import ssl
import logging
from typing import Dict, Any, Optional, Union
from urllib.parse import urlparse, urljoin, urlencode
from http.client import HTTPSConnection, HTTPConnection, HTTPException

logger = logging.getLogger(__name__)


class HTTPClientError(Exception):
    """
    Raised when a request fails.

    ``status_code`` is the HTTP status for error responses and None when the
    server could not be reached or returned something unreadable.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ''):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class JSONHTTPClient:
    """
    HTTP client speaking JSON to a single base URL.

    Handles TLS context setup (including a custom PEM truststore), default
    headers and error translation.
    """

    def __init__(self, name: str, base_url: str, headers: Optional[Dict[str, str]] = None,
                 verify_ssl: bool = True, truststore_file: Optional[str] = None,
                 timeout: float = 30):
        """
        Initialize the client.

        Args:
            name: Name used in log and error messages
            base_url: Base URL every request path is resolved against
            headers: Headers sent with every request
            verify_ssl: Whether to verify server certificates
            truststore_file: Optional PEM bundle of CA certificates
            timeout: Socket timeout in seconds
        """
        self.name = name
        self.base_url = base_url
        self.default_headers = {'Accept': 'application/json'}
        if headers:
            self.default_headers.update(headers)
        self.verify_ssl = verify_ssl
        self.timeout = timeout

        self.parsed_url = urlparse(base_url)
        self.host = self.parsed_url.netloc
        self.base_path = self.parsed_url.path.rstrip('/')

        self.ssl_context = None
        self._setup_ssl_context(truststore_file)

    def _setup_ssl_context(self, truststore_file: Optional[str]):
        """Set up SSL context based on configuration."""
        if self.parsed_url.scheme != 'https':
            return

        if not self.verify_ssl:
            self.ssl_context = ssl._create_unverified_context()
            logger.warning(f"SSL verification disabled for {self.name}")
            return

        self.ssl_context = ssl.create_default_context()

        if truststore_file:
            try:
                self.ssl_context.load_verify_locations(cafile=truststore_file)
                logger.info(f"Loaded PEM truststore for {self.name}: {truststore_file}")
            except (OSError, ssl.SSLError) as e:
                raise HTTPClientError(f"Truststore loading failed for {self.name}: {e}")

    def _open_connection(self) -> Union[HTTPSConnection, HTTPConnection]:
        """Open a new connection to the base URL host."""
        if self.parsed_url.scheme == 'https':
            return HTTPSConnection(self.host, context=self.ssl_context, timeout=self.timeout)
        return HTTPConnection(self.host, timeout=self.timeout)

    def build_path(self, path: str, query: Optional[Dict[str, Any]] = None) -> str:
        """Resolve ``path`` against the base path and append the encoded query."""
        full_path = urljoin(self.base_path + '/', path.lstrip('/'))
        if query:
            full_path += '?' + urlencode(query)
        return full_path

    def request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None,
                query: Optional[Dict[str, Any]] = None,
                headers: Optional[Dict[str, str]] = None) -> Any:
        """
        Make an HTTP request and decode the JSON response.

        Args:
            method: HTTP method (GET, POST, ...)
            path: Endpoint path relative to the base URL
            body: JSON request body
            query: Query string parameters
            headers: Additional headers

        Returns:
            Decoded JSON (empty dict for an empty body)

        Raises:
            HTTPClientError: On connection failure, HTTP status >= 400 or invalid JSON
        """
        full_path = self.build_path(path, query)

        request_headers = dict(self.default_headers)
        if headers:
            request_headers.update(headers)

        request_body = None
        if body is not None:
            request_body = json.dumps(body)
            request_headers['Content-Type'] = 'application/json'

        conn = self._open_connection()
        try:
            logger.debug(f"Making {method} request to {self.host}{full_path}")
            conn.request(method, full_path, request_body, request_headers)

            response = conn.getresponse()
            response_data = response.read().decode('utf-8')
            logger.debug(f"Response status: {response.status} {response.reason}")
        except (HTTPException, OSError) as e:
            raise HTTPClientError(f"Connection error to {self.name}: {e}") from e
        finally:
            conn.close()

        if response.status >= 400:
            raise HTTPClientError(f"HTTP {response.status}: {response.reason}",
                                  status_code=response.status, body=response_data)

        try:
            return json.loads(response_data) if response_data else {}
        except json.JSONDecodeError as e:
            raise HTTPClientError(f"Invalid JSON response from {self.name}: {e}") from e
