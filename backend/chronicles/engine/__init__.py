from .engine import ActionOutcome, CampaignDefinitions, ChronicleEngine
from .errors import (AlreadyRecordedError, ChronicleError,
                     InvalidTransitionError, NotFoundError, PersistenceError)
from .store import ChronicleStore

__all__ = [
    "ActionOutcome",
    "AlreadyRecordedError",
    "CampaignDefinitions",
    "ChronicleEngine",
    "ChronicleStore",
    "ChronicleError",
    "InvalidTransitionError",
    "NotFoundError",
    "PersistenceError",
]
