# backend/chronicles/logging.py
"""
Logging helpers for the rule engine.

Provides:
- get_logger(): module loggers under the "chronicles" namespace
- configure_logging(): one-shot root handler setup for the server and CLI
- rule_audit: audit trail of every rule-engine decision (trigger firings,
  cascades, hint responses, random events, bluffs, combat transitions)

The audit trail is advisory. The durable record of a firing is the log
table row written by the store, not this output.
"""

import logging
from typing import Any

AUDIT_LOGGER_NAME = "chronicles.audit"

_configured = False


def get_logger(name: str) -> logging.Logger:
    """Return a logger; bare module names are placed under 'chronicles.'."""
    if not name.startswith("chronicles"):
        name = f"chronicles.{name}"
    return logging.getLogger(name)


def configure_logging(level: str | int = "INFO") -> None:
    """Install a stream handler on the root logger (idempotent)."""
    global _configured
    if _configured:
        logging.getLogger().setLevel(level)
        return
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    _configured = True


def _fmt(details: dict[str, Any]) -> str:
    return " ".join(f"{k}={v!r}" for k, v in details.items())


class RuleAuditLogger:
    """
    Writes one line per rule-engine fact.

    Usage:
        rule_audit.log_trigger_fired(session_id, trigger_id, "Wise Ones", ["modify_stat"])
    """

    def __init__(self, logger_name: str = AUDIT_LOGGER_NAME) -> None:
        self.logger = logging.getLogger(logger_name)

    def log_trigger_fired(
        self,
        session_id: str,
        character_id: str,
        trigger_id: str,
        trigger_name: str,
        event_types: list[str],
    ) -> None:
        self.logger.info(
            "trigger_fired %s",
            _fmt({
                "session": session_id,
                "character": character_id,
                "trigger": trigger_id,
                "name": trigger_name,
                "events": event_types,
            }),
        )

    def log_cascade_applied(
        self,
        session_id: str,
        character_id: str,
        rule_id: str,
        source_interaction_id: str,
        target_interaction_id: str,
        effect_type: str,
    ) -> None:
        self.logger.info(
            "cascade_applied %s",
            _fmt({
                "session": session_id,
                "character": character_id,
                "rule": rule_id,
                "source": source_interaction_id,
                "target": target_interaction_id,
                "effect": effect_type,
            }),
        )

    def log_hint_response(
        self,
        session_id: str,
        character_id: str,
        hint_id: str,
        response: str,
    ) -> None:
        self.logger.info(
            "hint_response %s",
            _fmt({
                "session": session_id,
                "character": character_id,
                "hint": hint_id,
                "response": response,
            }),
        )

    def log_random_event(
        self,
        session_id: str,
        character_id: str | None,
        event_id: str,
        category: str,
        was_positive: bool,
    ) -> None:
        self.logger.info(
            "random_event %s",
            _fmt({
                "session": session_id,
                "character": character_id,
                "event": event_id,
                "category": category,
                "positive": was_positive,
            }),
        )

    def log_bluff(
        self,
        session_id: str,
        actor_id: str,
        target_id: str,
        attempt_type: str,
        roll_value: int,
        difficulty: int,
        success: bool,
    ) -> None:
        self.logger.info(
            "bluff %s",
            _fmt({
                "session": session_id,
                "actor": actor_id,
                "target": target_id,
                "type": attempt_type,
                "roll": roll_value,
                "difficulty": difficulty,
                "success": success,
            }),
        )

    def log_combat_transition(
        self,
        encounter_id: str,
        from_status: str,
        to_status: str,
    ) -> None:
        self.logger.info(
            "combat_transition %s",
            _fmt({"encounter": encounter_id, "from": from_status, "to": to_status}),
        )

    def log_persistence_failure(
        self,
        operation: str,
        details: dict[str, Any],
        error: BaseException,
    ) -> None:
        self.logger.error(
            "persistence_failure op=%s %s error=%s", operation, _fmt(details), error
        )


rule_audit = RuleAuditLogger()
