from __future__ import annotations

import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Mapping, Optional, Protocol, Union

from pension_projector.config import Settings
from pension_projector.core.projection import project
from pension_projector.domain.validation import ensure_plan
from pension_projector.errors import MalformedRemoteResponse, TransportFailure
from pension_projector.schemas.projection import (
    ExecutionOutcome,
    ExecutionSource,
    PlanInput,
    ProjectionResult,
)
from pension_projector.utils.cache import TTLCache, plan_cache_key
from pension_projector.utils.logging import get_logger, set_log_context

logger = get_logger("client.dispatcher")


class RemoteCompute(Protocol):
    def project(self, plan: PlanInput) -> ProjectionResult: ...


class Dispatcher:
    """
    Remote-first projection with a one-shot local fallback:
    - Validate the plan (invalid plans never reach either path)
    - Serve remote results from the TTL cache when one is configured
    - Ask the remote for at most ``timeout_seconds`` of wall-clock time
    - On timeout, transport failure or a malformed answer, run the local
      kernel on the same plan. The remote is not retried in the same call.
    """

    def __init__(
        self,
        remote: Optional[RemoteCompute] = None,
        *,
        timeout_seconds: float = 3.0,
        cache: Optional[TTLCache] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self.remote = remote
        self.timeout = float(timeout_seconds)
        self.cache = cache
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="remote-projection")

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[Any] = None) -> "Dispatcher":
        from pension_projector.client.remote import RemoteProjectionClient

        remote = None
        if settings.remote_url:
            remote = RemoteProjectionClient(
                settings.remote_url,
                timeout_seconds=settings.remote_timeout_seconds,
                session=session,
            )
        cache = TTLCache(default_ttl_seconds=settings.cache_ttl_seconds) if settings.cache_ttl_seconds > 0 else None
        return cls(remote, timeout_seconds=settings.remote_timeout_seconds, cache=cache)

    def compute(self, plan: Union[PlanInput, Mapping[str, Any]]) -> ExecutionOutcome:
        plan = ensure_plan(plan)  # raises PlanValidationError before any path runs
        set_log_context(request_id=uuid.uuid4().hex[:12], source="client")
        started = time.perf_counter()

        key = plan_cache_key(plan) if self.cache is not None else None
        if key is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return self._outcome(cached, "remote", started, from_cache=True)

        reason: Optional[str] = None
        if self.remote is None:
            reason = "no remote configured"
        else:
            try:
                result = self._call_remote(plan)
            except (TransportFailure, MalformedRemoteResponse) as e:
                reason = f"{type(e).__name__}: {e}"
            else:
                if key is not None:
                    self.cache.set(key, result)
                outcome = self._outcome(result, "remote", started)
                logger.debug(f"projection_served source=remote latency_ms={outcome.latency_ms:.1f}")
                return outcome

        logger.warning(f"remote_fallback reason={reason}")
        outcome = self._outcome(project(plan), "local", started, fallback_reason=reason)
        logger.debug(f"projection_served source=local latency_ms={outcome.latency_ms:.1f}")
        return outcome

    def _call_remote(self, plan: PlanInput) -> ProjectionResult:
        future: Future = self._executor.submit(self.remote.project, plan)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout as e:
            # the worker may keep running; its answer is dropped
            future.cancel()
            raise TransportFailure(f"no answer within {self.timeout:g}s") from e
        except (TransportFailure, MalformedRemoteResponse):
            raise
        except Exception as e:
            raise TransportFailure(f"remote call raised {type(e).__name__}: {e}") from e

    @staticmethod
    def _outcome(
        result: ProjectionResult,
        source: ExecutionSource,
        started: float,
        *,
        from_cache: bool = False,
        fallback_reason: Optional[str] = None,
    ) -> ExecutionOutcome:
        return ExecutionOutcome(
            result=result,
            source=source,
            latency_ms=(time.perf_counter() - started) * 1000.0,
            from_cache=from_cache,
            fallback_reason=fallback_reason,
        )

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
