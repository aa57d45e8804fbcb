#!/usr/bin/env python3
"""
Unit tests for burst planning and the burst scheduler.
"""

import os
import sys
import math
import threading
import unittest
from unittest.mock import Mock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from crm_profile_sync.crm.bursts import BurstScheduler, DirectoryScanError, plan_bursts
from crm_profile_sync.crm.models import BurstSpan, DirectoryUser, PageListing, PageFailure, PagingSection


def listing_for(page, total_pages=1):
    return PageListing(
        users=[DirectoryUser(id=f'id-{page}', email=f'page{page}@example.com')],
        pages=PagingSection(page=page, total_pages=total_pages)
    )


class TestPlanBursts(unittest.TestCase):
    """Test cases for plan_bursts."""

    def test_spans_cover_remaining_pages_exactly_once(self):
        for total_pages in range(1, 60):
            for burst_size in range(1, 20):
                spans = plan_bursts(total_pages, burst_size)

                covered = [page for span in spans for page in span.pages]
                self.assertEqual(covered, list(range(2, total_pages + 1)),
                                 f"P={total_pages} B={burst_size}")
                self.assertEqual(len(spans), math.ceil((total_pages - 1) / burst_size))
                self.assertTrue(all(1 <= len(span) <= burst_size for span in spans))

    def test_documented_scenario(self):
        spans = plan_bursts(37, 15)

        self.assertEqual(spans, [BurstSpan(2, 16), BurstSpan(17, 31), BurstSpan(32, 37)])

    def test_single_page_needs_no_bursts(self):
        self.assertEqual(plan_bursts(1, 50), [])
        self.assertEqual(plan_bursts(0, 50), [])

    def test_pages_fitting_one_burst(self):
        self.assertEqual(plan_bursts(16, 15), [BurstSpan(2, 16)])
        self.assertEqual(plan_bursts(17, 15), [BurstSpan(2, 16), BurstSpan(17, 17)])

    def test_invalid_burst_size(self):
        with self.assertRaises(ValueError):
            plan_bursts(10, 0)


class TestBurstScheduler(unittest.TestCase):
    """Test cases for BurstScheduler."""

    def test_documented_scenario_sleeps_between_bursts_only(self):
        fetched = []
        lock = threading.Lock()

        def fetch(page):
            with lock:
                fetched.append(page)
            return listing_for(page, 37)

        sleep = Mock()
        scheduler = BurstScheduler(fetch, burst_size=15, burst_delay_seconds=1, sleep=sleep)

        users = scheduler.fetch_pages(37)

        self.assertEqual(sorted(fetched), list(range(2, 38)))
        self.assertEqual(sleep.call_count, 2)
        sleep.assert_called_with(1)
        # Burst order, then page order inside each burst
        self.assertEqual([u.id for u in users], [f'id-{p}' for p in range(2, 38)])

    def test_bursts_do_not_overlap(self):
        """No page of a burst starts before every page of the previous burst finished."""
        events = []
        lock = threading.Lock()

        def fetch(page):
            with lock:
                events.append(('start', page))
            with lock:
                events.append(('end', page))
            return listing_for(page, 10)

        scheduler = BurstScheduler(fetch, burst_size=3, burst_delay_seconds=0, sleep=Mock())
        scheduler.fetch_pages(10)

        spans = plan_bursts(10, 3)
        for previous, current in zip(spans, spans[1:]):
            last_end = max(i for i, (kind, page) in enumerate(events)
                           if kind == 'end' and page in previous.pages)
            first_start = min(i for i, (kind, page) in enumerate(events)
                              if kind == 'start' and page in current.pages)
            self.assertLess(last_end, first_start)

    def test_pages_within_a_burst_run_concurrently(self):
        barrier = threading.Barrier(3, timeout=5)

        def fetch(page):
            # Deadlocks (and times out) unless all three pages are in flight together
            barrier.wait()
            return listing_for(page, 4)

        scheduler = BurstScheduler(fetch, burst_size=3, burst_delay_seconds=0, sleep=Mock())

        users = scheduler.fetch_pages(4)

        self.assertEqual(len(users), 3)

    def test_failed_page_aborts_scan(self):
        fetched = []

        def fetch(page):
            fetched.append(page)
            if page == 4:
                return PageFailure(page=4, error=RuntimeError('HTTP 503'))
            return listing_for(page, 10)

        sleep = Mock()
        scheduler = BurstScheduler(fetch, burst_size=3, burst_delay_seconds=5, sleep=sleep)

        with self.assertRaises(DirectoryScanError) as ctx:
            scheduler.fetch_pages(10)

        self.assertEqual([f.page for f in ctx.exception.failures], [4])
        # First burst is 2-4; nothing after it was requested
        self.assertEqual(sorted(fetched), [2, 3, 4])
        sleep.assert_not_called()

    def test_no_delay_when_zero(self):
        sleep = Mock()
        scheduler = BurstScheduler(lambda p: listing_for(p, 5), burst_size=1,
                                   burst_delay_seconds=0, sleep=sleep)

        scheduler.fetch_pages(5)

        sleep.assert_not_called()

    def test_single_page_directory_fetches_nothing(self):
        fetch = Mock()
        scheduler = BurstScheduler(fetch, burst_size=5, burst_delay_seconds=1, sleep=Mock())

        self.assertEqual(scheduler.fetch_pages(1), [])
        fetch.assert_not_called()

    def test_rejects_invalid_burst_size(self):
        with self.assertRaises(ValueError):
            BurstScheduler(Mock(), burst_size=0, burst_delay_seconds=1)


if __name__ == '__main__':
    unittest.main()
