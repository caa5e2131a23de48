"""
Tests for CacheService: staleness, single-flight refreshes, deferred
refresh on read and failure handling.

GitHub is replaced by FakeGitHub and time by ManualClock.
"""

import shutil
import tempfile
import threading
import time
import unittest
from datetime import timedelta
from pathlib import Path

from repocache.database import CacheStore, to_iso
from repocache.domain import RepoFilters
from repocache.errors import (
    AbuseLimited,
    InvalidFilter,
    PersistenceError,
    RateLimited,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from repocache.policies import StalenessPolicy
from repocache.services import CacheService, RefreshResult

from fakes import FakeGitHub, ManualClock, make_record, T0

TTL = timedelta(hours=1)


def _wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.005)


class ServiceTestCase(unittest.TestCase):

    background_refresh = False

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.store = CacheStore(db_path=Path(self.temp_dir) / 'cache.db')
        self.github = FakeGitHub({
            'ml': [make_record('a', 'x', 10), make_record('a', 'y', 20)],
        })
        self.clock = ManualClock()
        self.service = CacheService(
            self.store,
            self.github,
            StalenessPolicy(TTL),
            per_page=30,
            clock=self.clock,
            background_refresh=self.background_refresh,
        )

    def tearDown(self):
        self.service.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def snapshot(self):
        return (
            self.store.query(RepoFilters(per_page=100)).to_dict(),
            self.store.stats(),
        )

    def names(self, page):
        return [f"{r.owner}/{r.name}" for r in page.items]


class TestEnsureFresh(ServiceTestCase):

    def test_scenario_fetch_then_read(self):
        result = self.service.ensure_fresh('ml')

        self.assertIsInstance(result, RefreshResult)
        self.assertEqual(result.query_key, 'ml')
        self.assertEqual(result.total_count, 2)
        self.assertEqual(self.github.calls, [('ml is:public archived:false', 1, 30)])

        read = self.service.read(RepoFilters(sort='stars', order='desc', page=1, per_page=10))
        self.assertEqual(self.names(read.page), ['a/y', 'a/x'])

    def test_stored_items_are_classified_and_linked(self):
        result = self.service.ensure_fresh('ml')

        self.assertTrue(all(item.id is not None for item in result.items))
        self.assertEqual({item.difficulty for item in result.items}, {'intermediate'})
        self.assertEqual(result.items[0].query_keys, ('ml',))

    def test_query_key_is_normalized(self):
        self.service.ensure_fresh('  ML ')
        self.assertIsNotNone(self.store.last_refreshed('ml'))

    def test_staleness_monotonicity(self):
        self.assertTrue(self.service.needs_refresh('ml'))

        self.service.ensure_fresh('ml')
        self.assertFalse(self.service.needs_refresh('ml'))

        self.clock.advance(minutes=59)
        self.assertFalse(self.service.needs_refresh('ml'))
        self.assertIsNone(self.service.ensure_fresh('ml'))
        self.assertEqual(len(self.github.calls), 1)

        self.clock.advance(minutes=2)
        self.assertTrue(self.service.needs_refresh('ml'))
        self.assertIsNotNone(self.service.ensure_fresh('ml'))
        self.assertEqual(len(self.github.calls), 2)

    def test_global_needs_refresh_uses_latest_key(self):
        self.assertTrue(self.service.needs_refresh())
        self.service.ensure_fresh('ml')
        self.assertFalse(self.service.needs_refresh())
        self.assertTrue(self.service.needs_refresh('rust'))

    def test_upsert_idempotent_across_refreshes(self):
        self.service.ensure_fresh('ml')
        first = self.snapshot()[0]

        self.clock.advance(hours=2)
        self.service.ensure_fresh('ml')
        second = self.snapshot()[0]

        self.assertEqual(first['total'], second['total'])
        self.assertEqual(
            [(i['id'], i['stars']) for i in first['items']],
            [(i['id'], i['stars']) for i in second['items']],
        )

    def test_pages_are_gathered_before_one_commit(self):
        self.github.results['ml'] = [make_record('a', f'r{i}', i) for i in range(5)]
        self.service.per_page = 2
        self.service.pages = 3

        result = self.service.ensure_fresh('ml')

        self.assertEqual([call[1] for call in self.github.calls], [1, 2, 3])
        self.assertEqual(len(result.items), 5)
        self.assertEqual(self.store.refresh_meta('ml')['page'], 3)

    def test_short_page_stops_paging(self):
        self.service.pages = 5
        self.service.ensure_fresh('ml')
        self.assertEqual(len(self.github.calls), 1)


class TestSingleFlight(ServiceTestCase):

    def test_concurrent_refreshes_make_one_upstream_call(self):
        self.github.gate = threading.Event()
        results, errors = [], []

        def call():
            try:
                results.append(self.service.ensure_fresh('ml'))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=call) for _ in range(8)]
        for t in threads:
            t.start()
        _wait_for(lambda: self.service._flight.waiting('ml') == 7)
        self.assertTrue(self.service.is_refreshing('ml'))
        self.github.gate.set()
        for t in threads:
            t.join(5)

        self.assertEqual(errors, [])
        self.assertEqual(len(self.github.calls), 1)
        self.assertEqual(len(results), 8)
        self.assertTrue(all(r is results[0] for r in results))
        self.assertFalse(self.service.is_refreshing('ml'))

    def test_one_fetch_event_per_burst(self):
        self.github.gate = threading.Event()

        with self.assertLogs('repocache.services.cache_service', level='DEBUG') as logs:
            threads = [threading.Thread(target=self.service.ensure_fresh, args=('ml',)) for _ in range(5)]
            for t in threads:
                t.start()
            _wait_for(lambda: self.service._flight.waiting('ml') == 4)
            self.github.gate.set()
            for t in threads:
                t.join(5)

        ops = [getattr(record, 'op', None) for record in logs.records]
        self.assertEqual(ops.count('fetch'), 1)
        self.assertEqual(ops.count('refresh_join'), 4)

    def test_waiters_get_the_same_timeout_then_retry(self):
        self.github.gate = threading.Event()
        self.github.error = UpstreamTimeout("GitHub request timed out after 15.0s")
        errors = []

        def call():
            try:
                self.service.ensure_fresh('ml')
            except UpstreamTimeout as e:
                errors.append(e)

        threads = [threading.Thread(target=call) for _ in range(4)]
        for t in threads:
            t.start()
        _wait_for(lambda: self.service._flight.waiting('ml') == 3)
        self.github.gate.set()
        for t in threads:
            t.join(5)

        self.assertEqual(len(errors), 4)
        self.assertEqual(len(self.github.calls), 1)
        self.assertIsNone(self.store.last_refreshed('ml'))

        # Group cleared: the next call goes upstream again
        self.github.gate = None
        self.github.error = None
        self.assertIsNotNone(self.service.ensure_fresh('ml'))
        self.assertEqual(len(self.github.calls), 2)

    def test_different_keys_fetch_independently(self):
        self.github.results['rust'] = [make_record('r', 'cli', 5)]
        self.service.ensure_fresh('ml')
        self.service.ensure_fresh('rust')
        self.assertEqual(len(self.github.calls), 2)


class TestFailures(ServiceTestCase):

    def test_abuse_limit_leaves_cache_untouched(self):
        self.service.ensure_fresh('ml')
        before = self.snapshot()
        self.clock.advance(hours=2)
        self.github.results['ml'] = [make_record('a', 'x', 999), make_record('a', 'z', 1)]
        self.github.error = AbuseLimited(60)

        with self.assertRaises(AbuseLimited):
            self.service.ensure_fresh('ml')

        self.assertEqual(self.snapshot(), before)
        self.assertEqual(self.store.last_refreshed('ml'), T0)
        self.assertTrue(self.service.needs_refresh('ml'))
        self.assertEqual(len(self.github.calls), 2)

    def test_force_refresh_failure_does_not_partially_upsert(self):
        self.service.ensure_fresh('ml')
        before = self.snapshot()
        self.github.error = UpstreamUnavailable("GitHub API error 502")

        with self.assertRaises(UpstreamUnavailable):
            self.service.force_refresh('ml')

        self.assertEqual(self.snapshot(), before)

    def test_failure_on_later_page_stores_nothing(self):
        self.github.results['ml'] = [make_record('a', f'r{i}', i) for i in range(4)]
        self.service.per_page = 2
        self.service.pages = 2
        self.github.error = RateLimited(30)
        self.github.fail_on_page = 2
        before = self.snapshot()

        with self.assertRaises(RateLimited):
            self.service.ensure_fresh('ml')

        self.assertEqual(self.snapshot(), before)
        self.assertIsNone(self.store.last_refreshed('ml'))

    def test_persistence_failure_surfaces_and_keeps_meta(self):
        self.service.ensure_fresh('ml')
        before = self.snapshot()
        self.clock.advance(hours=2)
        self.github.results['ml'] = [make_record('a', 'x', 50), make_record('a', None, 1)]

        with self.assertRaises(PersistenceError):
            self.service.ensure_fresh('ml')

        self.assertEqual(self.snapshot(), before)
        self.assertEqual(self.store.last_refreshed('ml'), T0)

    def test_reads_succeed_while_upstream_always_fails(self):
        self.service.ensure_fresh('ml')
        self.github.error = UpstreamUnavailable("down")
        self.clock.advance(days=3)

        for _ in range(3):
            read = self.service.read(RepoFilters(sort='stars', order='desc'))
            self.assertEqual(self.names(read.page), ['a/y', 'a/x'])
            self.assertFalse(read.cached)

            with self.assertRaises(UpstreamUnavailable):
                self.service.ensure_fresh('ml')


class TestForceRefresh(ServiceTestCase):

    def test_bypasses_staleness(self):
        self.service.ensure_fresh('ml')
        result = self.service.force_refresh('ml', page=1, per_page=1)

        self.assertEqual(len(self.github.calls), 2)
        self.assertEqual(self.github.calls[-1][2], 1)
        self.assertEqual(len(result.items), 1)
        self.assertTrue(result.has_more)
        self.assertEqual(result.to_dict()['fetchedAt'], to_iso(T0))

    def test_empty_query_rejected(self):
        with self.assertRaises(InvalidFilter):
            self.service.force_refresh('   ')
        self.assertEqual(self.github.calls, [])

    def test_bad_paging_rejected(self):
        for page, per_page in ((0, 10), (1, 0), (1, 101)):
            with self.assertRaises(InvalidFilter):
                self.service.force_refresh('ml', page=page, per_page=per_page)
        self.assertEqual(self.github.calls, [])

    def test_later_page_does_not_mark_key_fresh(self):
        result = self.service.force_refresh('ml', page=2, per_page=1)

        self.assertEqual([r.name for r in result.items], ['y'])
        self.assertIsNotNone(self.store.get_repository_by_name('a', 'y'))
        self.assertIsNone(self.store.last_refreshed('ml'))
        self.assertTrue(self.service.needs_refresh('ml'))

    def test_later_page_keeps_first_page_meta(self):
        self.service.ensure_fresh('ml')
        self.clock.advance(minutes=30)

        self.service.force_refresh('ml', page=2, per_page=1)

        self.assertEqual(self.store.last_refreshed('ml'), T0)
        self.assertEqual(self.store.refresh_meta('ml')['per_page'], 30)


class TestRead(ServiceTestCase):

    def test_invalid_filters_rejected(self):
        with self.assertRaises(InvalidFilter):
            self.service.read(RepoFilters(per_page=0))

    def test_cached_flag_tracks_freshness(self):
        self.service.ensure_fresh('ml')

        self.assertTrue(self.service.read(RepoFilters(text='ml')).cached)
        self.clock.advance(hours=2)
        self.assertFalse(self.service.read(RepoFilters(text='ml')).cached)

    def test_no_refresh_scheduled_when_disabled(self):
        result = self.service.read(RepoFilters(text='ml'))
        self.assertFalse(result.refresh_scheduled)
        self.assertEqual(self.github.calls, [])


class TestDeferredRefresh(ServiceTestCase):

    background_refresh = True

    def test_stale_search_schedules_refresh(self):
        result = self.service.read(RepoFilters(text='ml'))

        self.assertFalse(result.cached)
        self.assertTrue(result.refresh_scheduled)
        self.assertEqual(result.query_key, 'ml')

        self.service.close()
        self.assertEqual(len(self.github.calls), 1)
        self.assertIsNotNone(self.store.last_refreshed('ml'))

    def test_duplicate_reads_schedule_once(self):
        self.github.gate = threading.Event()

        first = self.service.read(RepoFilters(text='ml'))
        second = self.service.read(RepoFilters(text='ML'))
        self.github.gate.set()
        self.service.close()

        self.assertTrue(first.refresh_scheduled)
        self.assertFalse(second.refresh_scheduled)
        self.assertEqual(len(self.github.calls), 1)

    def test_browse_read_never_refreshes(self):
        result = self.service.read(RepoFilters())
        self.service.close()

        self.assertFalse(result.refresh_scheduled)
        self.assertEqual(result.query_key, '__browse__')
        self.assertEqual(self.github.calls, [])

    def test_fresh_search_does_not_schedule(self):
        self.service.ensure_fresh('ml')
        result = self.service.read(RepoFilters(text='ml'))
        self.service.close()

        self.assertTrue(result.cached)
        self.assertFalse(result.refresh_scheduled)
        self.assertEqual(len(self.github.calls), 1)

    def test_deferred_failure_is_logged_not_raised(self):
        self.github.error = AbuseLimited(60)

        with self.assertLogs('repocache.services.cache_service', level='WARNING') as logs:
            result = self.service.read(RepoFilters(text='ml'))
            self.service.close()

        self.assertTrue(result.refresh_scheduled)
        self.assertTrue(any('refresh_failed' == r.op for r in logs.records if hasattr(r, 'op')))
        self.assertIsNone(self.store.last_refreshed('ml'))

    def test_unexpected_deferred_error_is_logged(self):
        self.github.error = KeyError('items')

        with self.assertLogs('repocache.services.cache_service', level='ERROR') as logs:
            result = self.service.read(RepoFilters(text='ml'))
            self.service.close()

        self.assertTrue(result.refresh_scheduled)
        self.assertTrue(any('crashed' in r.getMessage() for r in logs.records))
        self.assertEqual(self.service._scheduled, set())
        self.assertFalse(self.service.is_refreshing('ml'))

    def test_read_after_close_schedules_nothing(self):
        self.service.close()

        result = self.service.read(RepoFilters(text='ml'))

        self.assertFalse(result.cached)
        self.assertFalse(result.refresh_scheduled)
        self.assertIsNone(self.service._executor)
        self.assertEqual(self.github.calls, [])


class TestMetadata(ServiceTestCase):

    def test_languages(self):
        self.github.results['ml'] = [
            make_record('a', 'x', language='Python'),
            make_record('a', 'y', language='Go'),
            make_record('a', 'z', language=''),
        ]
        self.service.ensure_fresh('ml')
        self.assertEqual(self.service.languages(), ['Go', 'Python'])

    def test_repository_languages_recorded_on_cached_row(self):
        self.service.ensure_fresh('ml')
        self.github.languages[('a', 'x')] = {'Python': 100, 'C': 5}

        self.assertEqual(self.service.repository_languages('a', 'x'), {'Python': 100, 'C': 5})
        self.assertEqual(self.store.get_repository_by_name('a', 'x').languages, {'Python': 100, 'C': 5})

    def test_repository_languages_for_uncached_repo(self):
        self.github.languages[('o', 'n')] = {'Rust': 1}
        self.assertEqual(self.service.repository_languages('o', 'n'), {'Rust': 1})

    def test_stats(self):
        self.service.ensure_fresh('ml')

        stats = self.service.stats()

        self.assertEqual(stats['total_repositories'], 2)
        self.assertEqual(stats['per_query_last_refresh'], {'ml': to_iso(T0)})
        self.assertFalse(stats['needs_refresh'])
        self.assertEqual(stats['last_checked'], to_iso(T0))
        self.assertTrue(self.service.stats('rust')['needs_refresh'])

    def test_prune(self):
        self.service.ensure_fresh('ml')
        self.clock.advance(days=10)
        self.github.results['ml'] = [make_record('a', 'y', 20)]
        self.service.ensure_fresh('ml')

        result = self.service.prune('ml', timedelta(days=1))

        self.assertEqual(result, {'unlinked': 1, 'removed': 1})
        self.assertIsNone(self.store.get_repository_by_name('a', 'x'))


class TestLifecycle(unittest.TestCase):

    def test_from_config_owns_client(self):
        temp_dir = tempfile.mkdtemp()
        try:
            config = {
                'github': {'token': 't', 'timeout_seconds': 3},
                'cache': {'ttl_seconds': 60, 'per_page': 10, 'pages': 2, 'background_refresh': False},
                'database': {'path': str(Path(temp_dir) / 'cache.db')},
            }
            github = FakeGitHub()
            with CacheService.from_config(config, client=github) as service:
                self.assertEqual(service.policy.ttl, timedelta(seconds=60))
                self.assertEqual(service.per_page, 10)
                self.assertEqual(service.pages, 2)
                self.assertFalse(service.background_refresh)
            # Injected clients are left open
            self.assertFalse(github.closed)

            service = CacheService.from_config(config)
            self.assertEqual(service.client.token, 't')
            self.assertEqual(service.client.timeout, 3.0)
            service.close()
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)


if __name__ == '__main__':
    unittest.main()
