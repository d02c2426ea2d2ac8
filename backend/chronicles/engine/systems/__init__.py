"""
Rule systems - each owns one part of the campaign rule engine.

- conditions / effects: pure predicates and state deltas
- TriggerSystem: one-shot condition/effect rules
- CascadeSystem: interaction outcomes that lock, unlock or modify others
- HintSystem: conditional hints and their response outcomes
- RandomEventSystem: probabilistic events with recurrence and cooldown
- CombatSystem: hidden-stat encounters and bluffs
- EventDispatcher / SessionSynchronizer: real-time session feed and presence
"""

from .context import SessionContext, Event
from .events import EventDispatcher
from .triggers import TriggerSystem, TriggerEvaluation
from .cascades import CascadeSystem
from .hints import HintSystem, HintResolution, ChainProgress
from .random_events import RandomEventSystem, RandomEventCheck
from .combat import CombatSystem, CombatConfig, STAT_HINTS, get_stat_hint
from .sync import SessionSynchronizer, PresenceEntry

__all__ = [
    "SessionContext",
    "Event",
    "EventDispatcher",
    "TriggerSystem",
    "TriggerEvaluation",
    "CascadeSystem",
    "HintSystem",
    "HintResolution",
    "ChainProgress",
    "RandomEventSystem",
    "RandomEventCheck",
    "CombatSystem",
    "CombatConfig",
    "STAT_HINTS",
    "get_stat_hint",
    "SessionSynchronizer",
    "PresenceEntry",
]
