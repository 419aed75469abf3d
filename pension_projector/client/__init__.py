"""Local client: remote-first projection with an in-process fallback."""

from pension_projector.client.dispatcher import Dispatcher
from pension_projector.client.local import LocalClient
from pension_projector.client.remote import RemoteProjectionClient
from pension_projector.client.trigger import RecalculationTrigger, TriggerState

__all__ = ["Dispatcher", "LocalClient", "RecalculationTrigger", "RemoteProjectionClient", "TriggerState"]
