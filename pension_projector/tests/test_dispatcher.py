from __future__ import annotations

import threading
import time

import pytest
import requests

from pension_projector.client.dispatcher import Dispatcher
from pension_projector.client.remote import RemoteProjectionClient
from pension_projector.core.projection import project
from pension_projector.domain.validation import validate_plan
from pension_projector.errors import PlanValidationError, TransportFailure
from pension_projector.utils.cache import TTLCache


class KernelRemote:
    def __init__(self) -> None:
        self.calls = 0

    def project(self, plan):
        self.calls += 1
        return project(plan)


class BrokenRemote:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc
        self.calls = 0

    def project(self, plan):
        self.calls += 1
        raise self.exc


class HangingRemote:
    def __init__(self) -> None:
        self.release = threading.Event()
        self.calls = 0

    def project(self, plan):
        self.calls += 1
        self.release.wait(30)
        return project(plan)


class FakeResponse:
    def __init__(self, status_code=200, body=None) -> None:
        self.status_code = status_code
        self._body = body

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    def __init__(self, response=None, exc=None) -> None:
        self.response = response
        self.exc = exc
        self.calls = 0

    def post(self, url, json=None, timeout=None):
        self.calls += 1
        if self.exc is not None:
            raise self.exc
        return self.response


@pytest.fixture()
def dispatchers():
    made = []

    def build(*args, **kwargs) -> Dispatcher:
        dispatcher = Dispatcher(*args, **kwargs)
        made.append(dispatcher)
        return dispatcher

    yield build
    for dispatcher in made:
        dispatcher.close()


def test_remote_success_is_tagged_remote(dispatchers, plan_payload):
    remote = KernelRemote()
    outcome = dispatchers(remote).compute(plan_payload())

    assert outcome.source == "remote"
    assert outcome.from_cache is False
    assert outcome.fallback_reason is None
    assert remote.calls == 1


def test_transport_failure_falls_back_without_retry(dispatchers, plan_payload):
    remote = BrokenRemote(TransportFailure("connection refused"))
    outcome = dispatchers(remote).compute(plan_payload())

    assert outcome.source == "local"
    assert "TransportFailure" in outcome.fallback_reason
    assert outcome.result == project(validate_plan(plan_payload()))
    assert remote.calls == 1


def test_unexpected_remote_error_still_falls_back(dispatchers, plan_payload):
    outcome = dispatchers(BrokenRemote(RuntimeError("boom"))).compute(plan_payload())
    assert outcome.source == "local"


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(exc=requests.ConnectionError("refused")),
        FakeSession(FakeResponse(500, {"detail": "oops"})),
        FakeSession(FakeResponse(200, ValueError("not json"))),
        FakeSession(FakeResponse(200, {"unexpected": True})),
    ],
)
def test_http_failures_fall_back(dispatchers, plan_payload, session):
    remote = RemoteProjectionClient("http://server.test", session=session)
    outcome = dispatchers(remote).compute(plan_payload())

    assert outcome.source == "local"
    assert session.calls == 1


def _remote_body(payload, **changes):
    body = project(validate_plan(payload)).model_dump(mode="json")
    body.update(changes)
    return body


def test_stale_policy_version_is_malformed(dispatchers, plan_payload):
    session = FakeSession(FakeResponse(200, _remote_body(plan_payload(), policy_version="legacy")))
    outcome = dispatchers(RemoteProjectionClient("http://server.test", session=session)).compute(plan_payload())

    assert outcome.source == "local"
    assert "MalformedRemoteResponse" in outcome.fallback_reason


def test_broken_continuity_is_malformed(dispatchers, plan_payload):
    body = _remote_body(plan_payload())
    body["periods"][5]["opening_balance"] = "1.00"
    session = FakeSession(FakeResponse(200, body))
    outcome = dispatchers(RemoteProjectionClient("http://server.test", session=session)).compute(plan_payload())

    assert outcome.source == "local"
    assert "continuity" in outcome.fallback_reason


def test_answer_for_another_plan_is_malformed(dispatchers, plan_payload):
    session = FakeSession(FakeResponse(200, _remote_body(plan_payload(horizon_periods=12))))
    outcome = dispatchers(RemoteProjectionClient("http://server.test", session=session)).compute(plan_payload())
    assert outcome.source == "local"


def test_hanging_remote_is_abandoned_after_timeout(dispatchers, plan_payload):
    remote = HangingRemote()
    dispatcher = dispatchers(remote, timeout_seconds=0.2)
    try:
        started = time.monotonic()
        outcome = dispatcher.compute(plan_payload())
        elapsed = time.monotonic() - started
    finally:
        remote.release.set()

    assert outcome.source == "local"
    assert "no answer within" in outcome.fallback_reason
    # one timeout window plus local compute time
    assert elapsed < 0.2 + 2.0
    assert outcome.latency_ms >= 200


def test_invalid_plan_never_reaches_either_path(dispatchers, plan_payload):
    remote = KernelRemote()
    with pytest.raises(PlanValidationError) as info:
        dispatchers(remote).compute(plan_payload(horizon_periods=-1))

    assert info.value.issues[0][0] == "horizon_periods"
    assert remote.calls == 0


def test_cached_remote_result_is_flagged(dispatchers, plan_payload):
    remote = KernelRemote()
    dispatcher = dispatchers(remote, cache=TTLCache(default_ttl_seconds=60))

    first = dispatcher.compute(plan_payload())
    second = dispatcher.compute(plan_payload())

    assert (first.from_cache, second.from_cache) == (False, True)
    assert second.source == "remote"
    assert second.result == first.result
    assert remote.calls == 1


def test_local_fallbacks_are_not_cached(dispatchers, plan_payload):
    remote = BrokenRemote(TransportFailure("down"))
    dispatcher = dispatchers(remote, cache=TTLCache(default_ttl_seconds=60))

    dispatcher.compute(plan_payload())
    dispatcher.compute(plan_payload())
    assert remote.calls == 2


def test_no_remote_configured_computes_locally(dispatchers, plan_payload):
    outcome = dispatchers(None).compute(plan_payload())
    assert outcome.source == "local"
    assert outcome.fallback_reason == "no remote configured"


def test_from_settings_without_url_is_local_only(settings_factory):
    dispatcher = Dispatcher.from_settings(settings_factory(remote_url="", cache_ttl_seconds=0))
    try:
        assert dispatcher.remote is None
        assert dispatcher.cache is None
    finally:
        dispatcher.close()


def test_from_settings_builds_http_client(settings_factory):
    session = FakeSession(exc=requests.Timeout("slow"))
    dispatcher = Dispatcher.from_settings(
        settings_factory(remote_url="http://server.test/", remote_timeout_seconds=1.5, cache_ttl_seconds=30),
        session=session,
    )
    try:
        assert dispatcher.remote.url == "http://server.test/api/projection"
        assert dispatcher.remote.timeout == 1.5
        assert dispatcher.cache is not None
        assert dispatcher.compute({"horizon_periods": 3}).source == "local"
        assert session.calls == 1
    finally:
        dispatcher.close()
