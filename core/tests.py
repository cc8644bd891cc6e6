"""
Tests for idempotency locks and rate limiting.
"""
from unittest.mock import MagicMock, patch

from django.core.cache import cache
from django.test import SimpleTestCase, override_settings
from rest_framework.response import Response
from rest_framework.test import APIRequestFactory

from core.locks import RELEASE_SCRIPT, IdempotencyLock, idempotency_guard
from core.rate_limiting import get_client_ip, rate_limit


class IdempotencyLockTestCase(SimpleTestCase):
    """Cache-backed locks, as used without Redis."""

    def setUp(self):
        cache.clear()
        patcher = patch('core.locks.get_redis_client', return_value=None)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_second_acquire_fails(self):
        first = IdempotencyLock('payhere_lock:1', ttl=30)
        second = IdempotencyLock('payhere_lock:1', ttl=30)

        self.assertTrue(first.acquire())
        self.assertFalse(second.acquire())
        first.release()
        self.assertTrue(second.acquire())
        second.release()

    def test_release_only_by_owner(self):
        owner = IdempotencyLock('payhere_lock:2', ttl=30)
        owner.acquire()
        # Owner's lock expired and someone else took the key
        cache.set('payhere_lock:2', 'someone-else', 30)

        with self.assertLogs('core.locks', level='WARNING'):
            owner.release()
        self.assertEqual(cache.get('payhere_lock:2'), 'someone-else')

    def test_guard_releases_on_error(self):
        with self.assertRaises(RuntimeError):
            with idempotency_guard('payhere_lock:3') as lock:
                self.assertIsNotNone(lock)
                raise RuntimeError('boom')

        self.assertIsNone(cache.get('payhere_lock:3'))

    def test_guard_yields_none_when_held(self):
        with idempotency_guard('payhere_lock:4') as outer:
            with idempotency_guard('payhere_lock:4') as inner:
                self.assertIsNotNone(outer)
                self.assertIsNone(inner)
            # Inner guard must not release the outer holder's lock
            self.assertIsNotNone(cache.get('payhere_lock:4'))


@patch('core.locks.get_redis_client')
class RedisLockTestCase(SimpleTestCase):

    def test_acquire_uses_set_nx_with_expiry(self, mock_client):
        redis_client = MagicMock()
        redis_client.set.side_effect = [True, None]
        mock_client.return_value = redis_client

        first = IdempotencyLock('payhere_lock:5', ttl=30)
        second = IdempotencyLock('payhere_lock:5', ttl=30)

        self.assertTrue(first.acquire())
        self.assertFalse(second.acquire())
        redis_client.set.assert_any_call('payhere_lock:5', first.token, nx=True, ex=30)

    def test_release_is_compare_and_delete(self, mock_client):
        redis_client = MagicMock()
        redis_client.set.return_value = True
        redis_client.eval.return_value = 1
        mock_client.return_value = redis_client

        lock = IdempotencyLock('payhere_lock:6', ttl=30)
        lock.acquire()
        lock.release()

        redis_client.eval.assert_called_once_with(RELEASE_SCRIPT, 1, 'payhere_lock:6', lock.token)
        redis_client.delete.assert_not_called()
        redis_client.get.assert_not_called()

    def test_expired_lock_is_left_alone(self, mock_client):
        redis_client = MagicMock()
        redis_client.set.return_value = True
        # Script found another holder's token and deleted nothing
        redis_client.eval.return_value = 0
        mock_client.return_value = redis_client

        lock = IdempotencyLock('payhere_lock:7', ttl=30)
        lock.acquire()
        with self.assertLogs('core.locks', level='WARNING'):
            lock.release()
        self.assertFalse(lock.acquired)


class LimitedView:

    @rate_limit(max_requests=2, window_seconds=60)
    def post(self, request):
        return Response({'ok': True})


class RateLimitTestCase(SimpleTestCase):

    def setUp(self):
        self.factory = APIRequestFactory()

    def test_client_ip_prefers_forwarded_header(self):
        request = self.factory.post('/', HTTP_X_FORWARDED_FOR='203.0.113.5, 10.0.0.1')
        self.assertEqual(get_client_ip(request), '203.0.113.5')

    @patch('core.rate_limiting.get_redis_client', return_value=None)
    def test_fails_open_without_redis(self, mock_client):
        view = LimitedView()
        for _ in range(5):
            self.assertEqual(view.post(self.factory.post('/')).status_code, 200)

    @patch('core.rate_limiting.get_redis_client')
    def test_blocks_over_limit(self, mock_client):
        redis_client = MagicMock()
        redis_client.incr.side_effect = [1, 2, 3]
        redis_client.ttl.return_value = 42
        mock_client.return_value = redis_client
        view = LimitedView()

        first = view.post(self.factory.post('/'))
        self.assertEqual(first['X-RateLimit-Remaining'], '1')
        view.post(self.factory.post('/'))
        blocked = view.post(self.factory.post('/'))

        self.assertEqual(blocked.status_code, 429)
        self.assertEqual(blocked['Retry-After'], '42')
        redis_client.expire.assert_called_once()

    @override_settings(RATE_LIMIT_ENABLED=False)
    @patch('core.rate_limiting.get_redis_client')
    def test_disabled_by_setting(self, mock_client):
        LimitedView().post(self.factory.post('/'))
        mock_client.assert_not_called()
