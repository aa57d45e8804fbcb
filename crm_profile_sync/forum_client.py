"""
Forum directory lookup.

Finds the forum account behind an e-mail address and builds the canonical
public profile URL from its slug.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional

from crm_profile_sync.http_client import JSONHTTPClient, HTTPClientError

logger = logging.getLogger(__name__)


@dataclass
class ForumUser:
    email: str
    profile_slug: str


class ForumClient(JSONHTTPClient):
    """Read-only client for the forum's user API."""

    def __init__(self, config: Dict[str, Any]):
        """
        Args:
            config: The ``forum`` configuration section
        """
        self.config = config
        self.base_uri = config['base_uri']
        self.user_lookup_path = config.get('user_lookup_path', 'api/v2/users')

        headers = {}
        api_key = config.get('api_key')
        if api_key:
            headers['Authorization'] = f"Bearer {api_key}"

        super().__init__(
            name='Forum',
            base_url=self.base_uri,
            headers=headers,
            verify_ssl=config.get('verify_ssl', True),
            timeout=config.get('timeout_seconds', 10)
        )

    def get_user_by_email(self, email: str) -> Optional[ForumUser]:
        """
        Look up a forum user by e-mail address.

        Returns:
            The user, or None when the forum has no such user or could not be reached
        """
        try:
            response = self.request('GET', self.user_lookup_path, query={'email': email})
        except HTTPClientError as e:
            if e.status_code == 404:
                return None
            logger.error(f"Forum user lookup for {email} failed: {e}")
            return None

        # The endpoint answers with a list of matches or a single object
        if isinstance(response, list):
            response = response[0] if response else None
        if not response:
            return None

        profile = response.get('profile') or {}
        slug = profile.get('name') or response.get('name')
        if not slug:
            return None

        return ForumUser(email=response.get('email', email), profile_slug=slug)

    def profile_url(self, slug: str) -> str:
        """Canonical public profile URL for a forum slug."""
        return f"{self.base_uri}profile/{slug}/"

    def get_profile_url(self, email: str) -> Optional[str]:
        """Profile URL of the forum user with ``email``, or None."""
        user = self.get_user_by_email(email)
        return self.profile_url(user.profile_slug) if user else None
