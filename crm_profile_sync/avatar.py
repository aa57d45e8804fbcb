"""
Gravatar avatar lookup.
"""

import hashlib
import logging
from typing import Optional

from crm_profile_sync.http_client import JSONHTTPClient, HTTPClientError

logger = logging.getLogger(__name__)

GRAVATAR_BASE_URL = 'https://www.gravatar.com/'


class GravatarProvider:
    """Resolves avatar thumbnails from Gravatar public profiles."""

    def __init__(self, base_url: str = GRAVATAR_BASE_URL):
        self.base_url = base_url

    @staticmethod
    def get_gravatar_hash(email: str) -> str:
        """MD5 hex digest of the trimmed, lower-cased e-mail address."""
        return hashlib.md5(email.strip().lower().encode('utf-8')).hexdigest()

    def get_avatar_url(self, email: str, timeout_seconds: float = 5) -> Optional[str]:
        """
        Get the avatar thumbnail URL for an e-mail address.

        Args:
            email: E-mail address
            timeout_seconds: Socket timeout for the profile request

        Returns:
            Thumbnail URL, or None when there is no Gravatar profile or the lookup failed
        """
        client = JSONHTTPClient('Gravatar', self.base_url, timeout=timeout_seconds,
                                headers={'User-Agent': 'crm-profile-sync', 'Accept-Language': 'en'})
        profile_path = f"{self.get_gravatar_hash(email)}.json"

        try:
            profile = client.request('GET', profile_path)
        except HTTPClientError as e:
            # Most addresses have no Gravatar, so 404 is routine
            if e.status_code != 404:
                logger.warning(f"Gravatar lookup failed: {e}")
            return None

        if not isinstance(profile, dict):
            return None
        entries = profile.get('entry') or []
        if not entries:
            return None
        return entries[0].get('thumbnailUrl')
