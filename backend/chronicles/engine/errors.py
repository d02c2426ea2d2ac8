# backend/chronicles/engine/errors.py
"""
Exceptions raised by the rule engine.

Malformed campaign content never raises; predicates treat it as "not met".
These exceptions cover store failures, unknown ids and illegal state
transitions. None of them are fatal to the process.
"""


class ChronicleError(Exception):
    """Base class for rule engine errors."""


class PersistenceError(ChronicleError):
    """A store operation failed after exhausting its retries."""

    def __init__(self, operation: str, message: str = "") -> None:
        self.operation = operation
        super().__init__(f"{operation} failed" + (f": {message}" if message else ""))


class AlreadyRecordedError(ChronicleError):
    """A one-shot log row (trigger firing, non-recurring event) already exists."""

    def __init__(self, operation: str, record_id: str) -> None:
        self.operation = operation
        self.record_id = record_id
        super().__init__(f"{operation}: '{record_id}' is already recorded")


class NotFoundError(ChronicleError):
    """A session, character, hint or encounter id does not exist."""

    def __init__(self, kind: str, record_id: str) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} '{record_id}' not found")


class InvalidTransitionError(ChronicleError):
    """A combat encounter was asked to move to a status it cannot reach."""

    def __init__(self, encounter_id: str, from_status: str, to_status: str) -> None:
        self.encounter_id = encounter_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"encounter '{encounter_id}' cannot move from {from_status} to {to_status}"
        )
