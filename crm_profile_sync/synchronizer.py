"""
Profile URL synchronization.

Writes the canonical forum profile URL into a custom attribute of every CRM
contact that shares the user's e-mail address, touching only contacts whose
stored value is missing or stale.
"""

import logging
import threading
from typing import Dict, Any, List, Optional

from crm_profile_sync.crm.base import CRMAPIError, CRMTransportError
from crm_profile_sync.crm.models import DirectoryUser, ViewCriteria
from crm_profile_sync.crm.users_client import CRMUsersClient
from crm_profile_sync.forum_client import ForumClient
from crm_profile_sync.logging_setup import audit_logger
from crm_profile_sync.retry import (
    MaxRetriesExceeded,
    create_retry_callback,
    is_retryable_error,
    retry_call,
    retry_settings,
)

logger = logging.getLogger(__name__)


class ProfileUrlSynchronizer:
    """Keeps the profile-link attribute of CRM contacts in line with the forum."""

    def __init__(self, users_client: CRMUsersClient, forum_client: ForumClient,
                 profile_url_property_name: str = 'forums_member',
                 error_config: Optional[Dict[str, Any]] = None):
        """
        Args:
            users_client: CRM users client
            forum_client: Forum directory used to build canonical profile URLs
            profile_url_property_name: Custom attribute holding the profile URL
            error_config: The ``error_handling`` configuration section
        """
        self.users_client = users_client
        self.forum_client = forum_client
        self.property_name = profile_url_property_name
        self.error_config = error_config or {}

    def create_or_update_with_profile_url(self, email: str) -> List[DirectoryUser]:
        """
        Store the forum profile URL on every CRM contact with this e-mail address.

        Contacts already holding the canonical URL are left alone, so calling
        this twice in a row writes nothing the second time.

        Args:
            email: E-mail address of the forum user

        Returns:
            The contacts that were written, as returned by the CRM

        Raises:
            ValueError: If ``email`` is empty
            CRMAPIError: If a write fails for good or the directory cannot be scanned
        """
        if not email:
            raise ValueError("The 'email' argument cannot be None or an empty string.")

        profile_url = self.forum_client.get_profile_url(email)
        if profile_url is None:
            logger.warning(f"Couldn't get forum user profile URL for user with email address {email}.")
            return []

        users = self.users_client.view(ViewCriteria(email=email))

        written = []
        for user in users:
            if user.custom_attributes.get(self.property_name) == profile_url:
                logger.debug(f"Contact {user.id} already has the current profile URL")
                continue

            update = DirectoryUser(
                id=user.id,
                email=email,
                custom_attributes={self.property_name: profile_url}
            )
            written.append(self._upsert(update))
            # Contacts from the ambiguous-email path are the cached snapshot's
            # own objects; keep that snapshot in line with what was written
            user.custom_attributes[self.property_name] = profile_url

        logger.info(f"Profile URL sync for {email}: {len(users)} contacts matched, "
                    f"{len(written)} updated")
        return written

    def sync_in_background(self, email: str) -> threading.Thread:
        """
        Run the sync on a separate daemon thread.

        Failures are logged and never reach the caller.
        """
        thread = threading.Thread(target=self._sync_and_log, args=(email,),
                                  name=f"profile-sync-{email}", daemon=True)
        thread.start()
        return thread

    def _sync_and_log(self, email: str) -> None:
        try:
            self.create_or_update_with_profile_url(email)
        except Exception:
            logger.exception(f"Background profile URL sync failed for {email}")

    def _upsert(self, user: DirectoryUser) -> DirectoryUser:
        try:
            result = retry_call(
                self.users_client.create_or_update,
                args=(user,),
                exceptions=(CRMTransportError,),
                retry_if=is_retryable_error,
                on_retry=create_retry_callback(f"Update of contact {user.id}"),
                **retry_settings(self.error_config)
            )
        except MaxRetriesExceeded as e:
            audit_logger.log_user_write(user.email, user.id, self.property_name, False)
            raise e.last_exception
        except CRMAPIError:
            audit_logger.log_user_write(user.email, user.id, self.property_name, False)
            raise

        audit_logger.log_user_write(user.email, user.id, self.property_name, True)
        return result
