"""
Global pytest configuration and shared fixtures.

Provides common test infrastructure for all test suites including:
- In-memory database per test
- ChronicleStore / ChronicleEngine with a controllable rng
- State and definition factories
- A seeded campaign, characters and session
"""

import random
from collections.abc import AsyncGenerator
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from chronicles.db import create_tables, make_session_factory
from chronicles.engine import ChronicleEngine, ChronicleStore
from chronicles.engine.campaign import (CascadeRule, EffectSpec, Hint,
                                        RandomEvent, TriggerDefinition)
from chronicles.engine.state import CharacterRecord, SessionState
from chronicles.engine.systems import SessionContext

CAMPAIGN_ID = "test_campaign"
SESSION_ID = "session_1"

SAMPLE_CAMPAIGN = (
    Path(__file__).parent.parent / "chronicles" / "world_data" / "campaigns" / "sunken_keep.yaml"
)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create in-memory SQLite database engine for testing."""
    engine, _ = make_session_factory("sqlite+aiosqlite:///:memory:")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_factory) -> ChronicleStore:
    return ChronicleStore(session_factory, append_retries=2)


# ============================================================================
# Randomness
# ============================================================================


@pytest.fixture
def rng() -> MagicMock:
    """
    Forced dice: random() -> 0.5, randint -> 1, choice -> first element.

    Tests override return values where a specific roll matters.
    """
    mock = MagicMock(spec=random.Random)
    mock.random.return_value = 0.5
    mock.randint.return_value = 1
    mock.choice.side_effect = lambda seq: seq[0]
    return mock


@pytest.fixture
def ctx(store, rng) -> SessionContext:
    return SessionContext(store, rng)


@pytest.fixture
def chronicle_engine(store, rng) -> ChronicleEngine:
    return ChronicleEngine(store, rng=rng)


# ============================================================================
# Factories
# ============================================================================


@pytest.fixture
def make_state():
    """Factory for SessionState snapshots."""

    def _make(**kwargs) -> SessionState:
        return SessionState(
            stats=kwargs.pop("stats", {}),
            story_flags=kwargs.pop("story_flags", {}),
            inventory=kwargs.pop("inventory", []),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_trigger():
    """Factory for TriggerDefinition with (event_type, payload) effects."""

    def _make(trigger_id, trigger_type, conditions, effects=(), **kwargs) -> TriggerDefinition:
        return TriggerDefinition(
            id=trigger_id,
            campaign_id=kwargs.pop("campaign_id", CAMPAIGN_ID),
            name=kwargs.pop("name", trigger_id.replace("_", " ").title()),
            trigger_type=trigger_type,
            conditions=conditions,
            events=[
                EffectSpec(event_type=event_type, payload=payload, name=f"{trigger_id}_{i}")
                for i, (event_type, payload) in enumerate(effects)
            ],
            **kwargs,
        )

    return _make


@pytest.fixture
def make_rule():
    """Factory for CascadeRule."""

    def _make(rule_id, source, outcome, target, effect_type, effect_value=None, **kwargs) -> CascadeRule:
        return CascadeRule(
            id=rule_id,
            campaign_id=kwargs.pop("campaign_id", CAMPAIGN_ID),
            source_interaction_id=source,
            source_outcome_type=outcome,
            target_interaction_id=target,
            effect_type=effect_type,
            effect_value=effect_value or {},
            **kwargs,
        )

    return _make


@pytest.fixture
def make_hint():
    """Factory for Hint."""

    def _make(hint_id, **kwargs) -> Hint:
        return Hint(
            id=hint_id,
            campaign_id=kwargs.pop("campaign_id", CAMPAIGN_ID),
            hint_type=kwargs.pop("hint_type", "direction"),
            hint_text=kwargs.pop("hint_text", f"Hint {hint_id}"),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_event():
    """Factory for RandomEvent."""

    def _make(event_id, probability=100, **kwargs) -> RandomEvent:
        return RandomEvent(
            id=event_id,
            campaign_id=kwargs.pop("campaign_id", CAMPAIGN_ID),
            name=kwargs.pop("name", event_id.replace("_", " ").title()),
            category=kwargs.pop("category", "encounter"),
            probability=probability,
            **kwargs,
        )

    return _make


# ============================================================================
# Seeded Session
# ============================================================================


@pytest.fixture
async def seeded_session(store) -> str:
    """
    Campaign, two characters and one session they both joined.

    hero (user_1): wisdom 6, magic 3, charisma 5
    rival (user_2): wisdom 4, stealth 7, strength 8
    """
    await store.create_campaign(CAMPAIGN_ID, "Test Campaign")
    await store.create_character(CharacterRecord(
        id="hero",
        name="Aldric",
        user_id="user_1",
        stats={"wisdom": 6, "magic": 3, "charisma": 5},
        inventory=[],
    ))
    await store.create_character(CharacterRecord(
        id="rival",
        name="Brenna",
        user_id="user_2",
        stats={"wisdom": 4, "stealth": 7, "strength": 8},
        inventory=["Lantern"],
    ))
    await store.create_session(
        CAMPAIGN_ID,
        SESSION_ID,
        current_node_id="gate",
        turn_order=["user_1", "user_2"],
        location="courtyard",
    )
    await store.add_participant(SESSION_ID, "hero")
    await store.add_participant(SESSION_ID, "rival")
    return SESSION_ID


@pytest.fixture
def sample_campaign_path() -> Path:
    return SAMPLE_CAMPAIGN
