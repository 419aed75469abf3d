from __future__ import annotations

import random
from concurrent.futures import Future
from decimal import Decimal
from typing import Callable, Dict, List
from urllib.parse import urlsplit

import pytest
from flask.testing import FlaskClient

from pension_projector.app import create_app
from pension_projector.config import Settings
from pension_projector.storage import SQLiteScenarioStore


def make_settings(**overrides) -> Settings:
    values = dict(
        env="test",
        log_level="WARNING",
        remote_url="",
        remote_timeout_seconds=0.5,
        debounce_seconds=0.01,
        cache_ttl_seconds=0,
        scenario_db_path=":memory:",
        local_store_path="",
        cors_origins=("http://localhost:5173",),
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture()
def settings_factory() -> Callable[..., Settings]:
    return make_settings


@pytest.fixture()
def app():
    return create_app(make_settings(), store=SQLiteScenarioStore(":memory:"))


@pytest.fixture()
def client(app) -> FlaskClient:
    with app.test_client() as test_client:
        yield test_client


def example_plan() -> dict:
    """10k start, 200/month, 5% growth, 1% fee, ten years, no withdrawal."""
    return {
        "starting_balance": "10000",
        "contribution_amount": "200",
        "contributions_per_year": 12,
        "periods_per_year": 12,
        "annual_growth_rate": "0.05",
        "annual_fee_rate": "0.01",
        "annual_inflation_rate": "0.02",
        "horizon_periods": 120,
    }


@pytest.fixture()
def plan_payload() -> Callable[..., dict]:
    def build(**overrides) -> dict:
        plan = example_plan()
        plan.update(overrides)
        return plan

    return build


def _money(rng: random.Random, low: int, high: int) -> str:
    return str(Decimal(rng.randint(low, high)) / 100)


def _rate(rng: random.Random, low_bp: int, high_bp: int) -> str:
    return str(Decimal(rng.randint(low_bp, high_bp)) / 10000)


def random_plan(rng: random.Random) -> dict:
    """A valid plan payload drawn from ``rng``."""
    ppy = rng.choice([1, 4, 12, 26, 52])
    cpy = rng.choice([d for d in (1, 2, 4, 12, 13, 26, 52) if ppy % d == 0])
    horizon = rng.randint(0, 240)
    plan: Dict[str, object] = {
        "starting_balance": _money(rng, 0, 50_000_000),
        "contribution_amount": _money(rng, 0, 500_000),
        "contributions_per_year": cpy,
        "periods_per_year": ppy,
        "annual_growth_rate": _rate(rng, -300, 1500),
        "annual_fee_rate": _rate(rng, 0, 300),
        "annual_inflation_rate": _rate(rng, 0, 800),
        "horizon_periods": horizon,
        "allow_negative_balance": rng.random() < 0.2,
    }
    if horizon and rng.random() < 0.7:
        start = rng.randint(0, horizon)
        if rng.random() < 0.5:
            plan["withdrawal"] = {
                "start_period": start,
                "mode": "fixed",
                "amount": _money(rng, 0, 1_000_000),
                "index_to_inflation": rng.random() < 0.5,
            }
        else:
            plan["withdrawal"] = {"start_period": start, "mode": "rate", "annual_rate": _rate(rng, 0, 1000)}
    if horizon and rng.random() < 0.3:
        starts = sorted(rng.sample(range(horizon), k=min(3, horizon)))
        plan["growth_schedule"] = [{"from_period": p, "annual_rate": _rate(rng, -500, 1500)} for p in starts]
    if horizon and rng.random() < 0.3:
        plan["adjustments"] = {
            str(rng.randrange(horizon)): _money(rng, -2_000_000, 2_000_000) for _ in range(rng.randint(1, 3))
        }
    return plan


@pytest.fixture()
def random_plans() -> List[dict]:
    rng = random.Random(20240611)
    return [random_plan(rng) for _ in range(60)]


class _TransportResponse:
    def __init__(self, flask_response) -> None:
        self.status_code = flask_response.status_code
        self._flask_response = flask_response

    def json(self):
        data = self._flask_response.get_json(silent=True)
        if data is None:
            raise ValueError("not JSON")
        return data


class FlaskTransport:
    """``requests.Session`` stand-in that routes POSTs into a Flask test client."""

    def __init__(self, flask_client: FlaskClient) -> None:
        self.client = flask_client
        self.calls = 0

    def post(self, url, json=None, timeout=None):
        self.calls += 1
        return _TransportResponse(self.client.post(urlsplit(url).path, json=json))


@pytest.fixture()
def flask_transport(app) -> FlaskTransport:
    # no `with` block: requests arrive from dispatcher worker threads
    return FlaskTransport(app.test_client())


class SyncExecutor:
    """Runs submitted work on the calling thread."""

    def submit(self, fn, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait: bool = True, **kwargs) -> None:
        pass


class ManualTimer:
    def __init__(self, interval: float, callback) -> None:
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.callback()


class ManualTimers:
    def __init__(self) -> None:
        self.timers: List[ManualTimer] = []

    def __call__(self, interval: float, callback) -> ManualTimer:
        timer = ManualTimer(interval, callback)
        self.timers.append(timer)
        return timer


@pytest.fixture()
def manual_timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture()
def sync_executor() -> SyncExecutor:
    return SyncExecutor()
