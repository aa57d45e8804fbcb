"""
Burst-scheduled fetching of the remaining listing pages.

Pages 2..N are split into contiguous spans of at most ``burst_size`` pages.
Each span is fetched concurrently and joined before the next one starts, with
a fixed pause in between to stay under the CRM's request throttling.
"""

import math
import time
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Union

from crm_profile_sync.crm.base import CRMAPIError
from crm_profile_sync.crm.models import BurstSpan, DirectoryUser, PageListing, PageFailure

logger = logging.getLogger(__name__)

PageFetch = Callable[[int], Union[PageListing, PageFailure]]


class DirectoryScanError(CRMAPIError):
    """A page of the directory listing could not be fetched; the scan is abandoned."""

    def __init__(self, failures: List[PageFailure]):
        self.failures = failures
        pages = ', '.join(str(f.page) for f in failures)
        super().__init__(f"Directory scan aborted, failed pages: {pages} ({failures[0].error})")


def plan_bursts(total_pages: int, burst_size: int) -> List[BurstSpan]:
    """
    Split pages ``2..total_pages`` into consecutive bursts.

    Page 1 is excluded because it is fetched first to learn ``total_pages``.

    Args:
        total_pages: Page count reported by the first page
        burst_size: Maximum number of pages per burst

    Returns:
        ``ceil((total_pages - 1) / burst_size)`` spans in page order
    """
    if burst_size < 1:
        raise ValueError(f"burst_size must be at least 1, got {burst_size}")

    if total_pages < 2:
        return []

    burst_count = math.ceil((total_pages - 1) / burst_size)
    return [
        BurstSpan((k - 1) * burst_size + 2, min(k * burst_size + 1, total_pages))
        for k in range(1, burst_count + 1)
    ]


class BurstScheduler:
    """Fetches page spans concurrently, one burst at a time."""

    def __init__(self, fetch_page: PageFetch, burst_size: int, burst_delay_seconds: float,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Args:
            fetch_page: Returns a PageListing or a PageFailure for a page number
            burst_size: Maximum concurrent fetches
            burst_delay_seconds: Pause between bursts
            sleep: Function used for the pause
        """
        if burst_size < 1:
            raise ValueError(f"burst_size must be at least 1, got {burst_size}")

        self.fetch_page = fetch_page
        self.burst_size = burst_size
        self.burst_delay_seconds = burst_delay_seconds
        self.sleep = sleep

    def fetch_pages(self, total_pages: int) -> List[DirectoryUser]:
        """
        Fetch pages ``2..total_pages`` and return their users.

        Users come back burst by burst and, inside a burst, in page order.

        Raises:
            DirectoryScanError: If any page in a burst failed
        """
        spans = plan_bursts(total_pages, self.burst_size)
        users = []

        if not spans:
            return users

        logger.info(f"Fetching {total_pages - 1} remaining pages in {len(spans)} bursts "
                    f"of up to {self.burst_size}")

        with ThreadPoolExecutor(max_workers=self.burst_size,
                                thread_name_prefix='directory-page') as executor:
            for index, span in enumerate(spans):
                if index > 0 and self.burst_delay_seconds > 0:
                    logger.debug(f"Pausing {self.burst_delay_seconds}s before pages "
                                 f"{span.first_page}-{span.last_page}")
                    self.sleep(self.burst_delay_seconds)

                users.extend(self._run_burst(executor, span))

        return users

    def _run_burst(self, executor: ThreadPoolExecutor, span: BurstSpan) -> List[DirectoryUser]:
        logger.debug(f"Starting burst for pages {span.first_page}-{span.last_page}")

        futures = [executor.submit(self.fetch_page, page) for page in span.pages]
        # result() on every future is the join; nothing from the next burst is
        # submitted before all of these finished
        results = [future.result() for future in futures]

        failures = [r for r in results if isinstance(r, PageFailure)]
        if failures:
            logger.error(f"Burst {span.first_page}-{span.last_page} had {len(failures)} failed pages")
            raise DirectoryScanError(failures)

        users = []
        for listing in results:
            users.extend(listing.users)
        return users
