from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Union

from pension_projector.client.dispatcher import Dispatcher
from pension_projector.client.trigger import RecalculationTrigger
from pension_projector.config import Settings
from pension_projector.core.projection import summarize
from pension_projector.schemas.projection import ExecutionOutcome, PlanInput
from pension_projector.schemas.scenario import ScenarioRecord
from pension_projector.storage.local_store import LocalScenarioStore
from pension_projector.utils.logging import get_logger

logger = get_logger("client.local")


class LocalClient:
    """
    The client side in one object: plan changes go through the debounced
    trigger to the dispatcher, scenarios live in the local JSON store.
    """

    def __init__(self, dispatcher: Dispatcher, trigger: RecalculationTrigger, store: LocalScenarioStore) -> None:
        self.dispatcher = dispatcher
        self.trigger = trigger
        self.store = store

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        on_result: Callable[[int, ExecutionOutcome], None],
        *,
        on_error: Optional[Callable[[int, Exception], None]] = None,
        session: Optional[Any] = None,
    ) -> "LocalClient":
        dispatcher = Dispatcher.from_settings(settings, session=session)
        trigger = RecalculationTrigger.from_settings(settings, dispatcher, on_result, on_error=on_error)
        return cls(dispatcher, trigger, LocalScenarioStore.from_settings(settings))

    def plan_changed(self, plan: Union[PlanInput, Mapping[str, Any]]) -> int:
        return self.trigger.notify(plan)

    def open_scenario(self, scenario_id: str) -> int:
        """Load a saved scenario and schedule its recompute."""
        return self.trigger.notify(self.store.load(scenario_id).plan)

    def save_scenario(self, name: str, plan: PlanInput, outcome: Optional[ExecutionOutcome] = None) -> Optional[str]:
        """Returns the id, or None when the local store is unavailable."""
        summary = summarize(outcome.result, starting_balance=plan.starting_balance) if outcome else None
        scenario_id = self.store.save(ScenarioRecord(name=name, plan=plan, source="local", summary=summary))
        if scenario_id is None:
            logger.warning(f"scenario_not_saved reason={self.store.unavailable_reason}")
        return scenario_id

    def close(self) -> None:
        self.trigger.close()
        self.dispatcher.close()
