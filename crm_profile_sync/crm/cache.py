"""
Short-lived cache of the whole CRM user directory.

There is a single slot holding every user. Population is not guarded by a
lock: two callers missing at the same time both scan the directory and the
later one overwrites the slot. Each write replaces the slot with a complete
snapshot, so the worst case is a duplicate scan, never a mixed list.
"""

import time
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from crm_profile_sync.crm.bursts import BurstScheduler, DirectoryScanError
from crm_profile_sync.crm.models import DirectoryUser, PageListing, PageFailure
from crm_profile_sync.logging_setup import audit_logger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    users: List[DirectoryUser]
    expires_at: float


class DirectoryCache:
    """Memoizes the flattened user list for ``caching_timeout_minutes``."""

    def __init__(self, fetch_page: Callable[[int], Union[PageListing, PageFailure]],
                 scheduler: BurstScheduler, caching_timeout_minutes: float,
                 clock: Callable[[], float] = time.monotonic):
        self.fetch_page = fetch_page
        self.scheduler = scheduler
        self.ttl_seconds = caching_timeout_minutes * 60
        self.clock = clock
        self._entry: Optional[CacheEntry] = None

    def get_all_users(self) -> List[DirectoryUser]:
        """
        Return every user in the directory, scanning it when the cache is stale.

        The list is new on every call but the users in it are the snapshot's
        own objects, so attribute changes made by callers stay cached.

        Raises:
            DirectoryScanError: If the scan failed; nothing is cached then
        """
        entry = self._entry
        if entry is not None and self.clock() < entry.expires_at:
            return list(entry.users)

        users = self._scan()
        self._entry = CacheEntry(users=users, expires_at=self.clock() + self.ttl_seconds)
        return list(users)

    def invalidate(self) -> None:
        self._entry = None

    def _scan(self) -> List[DirectoryUser]:
        started = time.monotonic()
        logger.info("Directory cache is empty or expired, scanning all users")

        first = self.fetch_page(1)
        if isinstance(first, PageFailure):
            raise DirectoryScanError([first])

        # total_pages from page 1 holds for the whole scan
        total_pages = first.total_pages
        users = list(first.users)

        if total_pages > 1:
            users.extend(self.scheduler.fetch_pages(total_pages))

        if len(users) != first.total_count:
            logger.debug(f"Directory scan returned {len(users)} users, "
                         f"listing reported {first.total_count}")

        audit_logger.log_directory_scan(total_pages, len(users), time.monotonic() - started)
        return users
