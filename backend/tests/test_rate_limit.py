from types import SimpleNamespace

from fastapi.testclient import TestClient

from wozamali_office.config import settings
from wozamali_office.main import app
from wozamali_office.routers import account
from wozamali_office.utils import rate_limit
from wozamali_office.utils.rate_limit import InMemoryRateLimiter

client = TestClient(app)


def test_limiter_blocks_after_max_and_reports_retry_after():
    limiter = InMemoryRateLimiter()
    assert limiter.allow('k', 2, 60) == (True, 0)
    assert limiter.allow('k', 2, 60) == (True, 0)
    allowed, retry_after = limiter.allow('k', 2, 60)
    assert allowed is False
    assert 1 <= retry_after <= 60
    assert limiter.allow('other', 2, 60) == (True, 0)
    limiter.reset('k')
    assert limiter.allow('k', 2, 60) == (True, 0)


def test_limiter_window_expires(monkeypatch):
    limiter = InMemoryRateLimiter()
    now = [1000.0]
    monkeypatch.setattr(rate_limit, 'time', SimpleNamespace(monotonic=lambda: now[0]))
    assert limiter.allow('k', 1, 10)[0] is True
    assert limiter.allow('k', 1, 10)[0] is False
    now[0] += 11
    assert limiter.allow('k', 1, 10)[0] is True


def test_limiter_evicts_expired_keys(monkeypatch):
    limiter = InMemoryRateLimiter()
    now = [1000.0]
    monkeypatch.setattr(rate_limit, 'time', SimpleNamespace(monotonic=lambda: now[0]))
    for i in range(50):
        limiter.allow(f'client-{i}', 5, 10)
    assert len(limiter) == 50
    now[0] += 10
    limiter.allow('fresh', 5, 10)
    assert len(limiter) == 1


def test_limiter_window_is_fixed(monkeypatch):
    limiter = InMemoryRateLimiter()
    now = [1000.0]
    monkeypatch.setattr(rate_limit, 'time', SimpleNamespace(monotonic=lambda: now[0]))
    assert limiter.allow('k', 2, 10)[0] is True
    now[0] += 9
    assert limiter.allow('k', 2, 10)[0] is True
    assert limiter.allow('k', 2, 10) == (False, 1)
    now[0] += 1
    assert limiter.allow('k', 2, 10) == (True, 0)


def test_login_rate_limit_returns_429(monkeypatch):
    monkeypatch.setattr(settings, 'LOGIN_RATE_LIMIT_PER_MIN', 2)
    monkeypatch.setattr(account, '_login_rate_limiter', InMemoryRateLimiter())
    body = {'email': 'brute@example.com', 'password': 'guess-guess'}
    assert client.post('/api/auth/login', json=body).status_code == 401
    assert client.post('/api/auth/login', json=body).status_code == 401
    r = client.post('/api/auth/login', json=body)
    assert r.status_code == 429
    assert int(r.headers['Retry-After']) >= 1
    assert 'rate limit exceeded' in r.json()['error']
