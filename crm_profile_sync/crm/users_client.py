"""
CRM users API integration.

Implements page fetching for the full-directory scan, user lookup by id,
external user id or e-mail (including the duplicate e-mail fallback) and the
create-or-update call.
"""

import logging
from typing import Dict, List, Any, Optional, Union

from crm_profile_sync.crm.base import (
    CRMAPIBase,
    CRMAPIError,
    CRMBadRequestError,
    CRMNotFoundError,
    AmbiguousMatchError,
    CRMTransportError,
)
from crm_profile_sync.crm.bursts import BurstScheduler
from crm_profile_sync.crm.cache import DirectoryCache
from crm_profile_sync.crm.models import (
    DirectoryUser,
    PageFailure,
    PageListing,
    ViewCriteria,
)
from crm_profile_sync.crm.validation import validate_custom_attributes

logger = logging.getLogger(__name__)

USERS_ENDPOINT = 'users'


class CRMUsersClient(CRMAPIBase):
    """
    Client for the CRM ``/users`` endpoint.

    Unlike the CRM's own API, ``view`` can return several users for one
    e-mail address: when the server refuses an e-mail filter because the
    address is shared, the cached full directory is searched instead.
    """

    def __init__(self, config: Dict[str, Any], cache: Optional[DirectoryCache] = None):
        """
        Initialize the users client.

        Args:
            config: The ``crm`` configuration section
            cache: Directory cache to use; one is built from ``config`` if omitted
        """
        super().__init__(config)

        self.page_size = config.get('page_size', 60)

        if cache is None:
            scheduler = BurstScheduler(
                self.fetch_page,
                burst_size=config.get('burst_size', 50),
                burst_delay_seconds=config.get('burst_delay_seconds', 10)
            )
            cache = DirectoryCache(
                self.fetch_page,
                scheduler,
                caching_timeout_minutes=config.get('caching_timeout_minutes', 30)
            )
        self.cache = cache

        logger.info(f"Initialized CRM users client for {self.base_url}")

    def fetch_page(self, page_number: int) -> Union[PageListing, PageFailure]:
        """
        Fetch one page of the user listing.

        Failures are returned rather than raised so the caller decides whether
        to carry on or abort.

        Args:
            page_number: 1-based page number

        Returns:
            The page, or a PageFailure describing why it could not be fetched
        """
        try:
            response = self.request('GET', USERS_ENDPOINT,
                                    query={'per_page': self.page_size, 'page': page_number})
            return PageListing.from_dict(response)
        except (CRMAPIError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"Failed to fetch user listing page {page_number}: {e}")
            return PageFailure(page=page_number, error=e)

    def get_all_users(self) -> List[DirectoryUser]:
        """Return every user in the directory (cached)."""
        return self.cache.get_all_users()

    def view(self, criteria: Union[ViewCriteria, DirectoryUser]) -> List[DirectoryUser]:
        """
        Get users by ``id``, ``user_id`` or ``email``, in that order of precedence.

        Args:
            criteria: Query object; only the first populated field is used

        Returns:
            Matching users; empty when nothing matched or the lookup failed

        Raises:
            ValueError: If none of the three fields is set
            DirectoryScanError: If the duplicate e-mail fallback could not scan the directory
        """
        if criteria is None:
            raise ValueError("criteria must not be None")

        if criteria.id:
            return self._get_single(f"{USERS_ENDPOINT}/{criteria.id}")
        if criteria.user_id:
            return self._get_single(USERS_ENDPOINT, query={'user_id': criteria.user_id})
        if criteria.email:
            try:
                return self._get_single(USERS_ENDPOINT, query={'email': criteria.email})
            except AmbiguousMatchError:
                logger.info(f"Several users share {criteria.email}, searching the full directory")
                return [user for user in self.get_all_users() if user.email == criteria.email]

        raise ValueError("You need to provide either 'id', 'user_id', or 'email' to view a user.")

    def create_or_update(self, user: DirectoryUser) -> DirectoryUser:
        """
        Create a new or update an existing user.

        Without an ``id`` the CRM matches on ``user_id``/``email`` and creates
        the user if needed; with an ``id`` the record is updated.

        Raises:
            AttributeValidationError: If custom attributes break CRM rules (no request is made)
            CRMAPIError: If the request fails
        """
        validate_custom_attributes(user.custom_attributes)

        response = self.request('POST', USERS_ENDPOINT, body=user.to_dict())
        return DirectoryUser.from_dict(response)

    def _get_single(self, path: str, query: Optional[Dict[str, Any]] = None) -> List[DirectoryUser]:
        try:
            response = self.request('GET', path, query=query)
        except CRMNotFoundError:
            return []
        except CRMBadRequestError as e:
            if query and 'email' in query:
                raise AmbiguousMatchError(str(e), status_code=e.status_code) from e
            logger.error(f"User lookup {path} {query} rejected: {e}")
            return []
        except CRMTransportError as e:
            logger.error(f"User lookup {path} {query} failed: {e}")
            return []

        return [DirectoryUser.from_dict(response)]
