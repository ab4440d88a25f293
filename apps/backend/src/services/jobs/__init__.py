"""Job submission and result tracking."""

from .memory_store import InMemoryJobStore
from .state_machine import Phase, ResultStateMachine, UIState
from .subscription import SubscriptionManager, SubscriptionState
from .submitter import TaskSubmitter


__all__ = [
    "InMemoryJobStore",
    "Phase",
    "ResultStateMachine",
    "SubscriptionManager",
    "SubscriptionState",
    "TaskSubmitter",
    "UIState",
]
