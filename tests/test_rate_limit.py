import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.database.mongodb import get_contacts_collection
from app.utils.rate_limit import FixedWindowRateLimiter
from main import create_app

API = "/api/v1/contacts"


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_allows_up_to_the_ceiling_then_blocks():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(window_seconds=60, max_requests=2, clock=clock)

    assert limiter.hit("1.2.3.4") == (True, 1, 60)
    assert limiter.hit("1.2.3.4") == (True, 0, 60)

    clock.now += 15
    allowed, remaining, retry_after = limiter.hit("1.2.3.4")
    assert allowed is False
    assert remaining == 0
    assert retry_after == 45


def test_clients_are_counted_separately():
    limiter = FixedWindowRateLimiter(window_seconds=60, max_requests=1, clock=FakeClock())

    assert limiter.hit("1.1.1.1")[0] is True
    assert limiter.hit("2.2.2.2")[0] is True
    assert limiter.hit("1.1.1.1")[0] is False


def test_new_window_resets_the_count():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(window_seconds=60, max_requests=1, clock=clock)
    limiter.hit("1.1.1.1")
    limiter.hit("2.2.2.2")

    clock.now += 60

    assert limiter.hit("1.1.1.1")[0] is True
    # stale entries are pruned when a window rolls over
    assert "2.2.2.2" not in limiter.hits


@pytest.fixture
def limited_client(collection):
    app = create_app(Settings(LOG_FILE="", ENVIRONMENT="production", RATE_LIMIT_MAX_REQUESTS=2, RATE_LIMIT_WINDOW_SECONDS=60))
    app.dependency_overrides[get_contacts_collection] = lambda: collection
    return TestClient(app)


def test_contacts_routes_return_429_past_the_limit(limited_client):
    assert limited_client.get(API).status_code == 200
    assert limited_client.get(f"{API}/stats").status_code == 200

    response = limited_client.get(API)

    assert response.status_code == 429
    assert response.json() == {
        "status": "error",
        "message": "Too many requests from this IP, please try again later.",
    }
    assert 1 <= int(response.headers["Retry-After"]) <= 60
    assert response.headers["RateLimit-Limit"] == "2"


def test_health_is_not_rate_limited(limited_client):
    for _ in range(5):
        assert limited_client.get("/health").status_code == 200


def test_counted_responses_carry_rate_limit_headers(limited_client):
    response = limited_client.get(API)

    assert response.status_code == 200
    assert response.headers["RateLimit-Limit"] == "2"
    assert response.headers["RateLimit-Remaining"] == "1"
    assert 1 <= int(response.headers["RateLimit-Reset"]) <= 60


def test_admin_sub_routes_are_not_counted_in_development(collection):
    app = create_app(Settings(LOG_FILE="", ENVIRONMENT="development", RATE_LIMIT_MAX_REQUESTS=1))
    app.dependency_overrides[get_contacts_collection] = lambda: collection
    client = TestClient(app)

    for _ in range(3):
        response = client.get(f"{API}/stats")
        assert response.status_code == 200
        assert "RateLimit-Limit" not in response.headers

    assert client.get(API).status_code == 200
    assert client.get(API).status_code == 429
