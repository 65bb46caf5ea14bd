from .memory_states import MemoryStateRepository
from .progress import ProgressRepository
from .retry import RetryPolicy
from .sessions import SessionRecoveryStore

__all__ = [
    "MemoryStateRepository",
    "ProgressRepository",
    "RetryPolicy",
    "SessionRecoveryStore",
]
