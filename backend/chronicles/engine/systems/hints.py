# backend/chronicles/engine/systems/hints.py
"""
HintSystem - Conditional suggestions whose response branches into an outcome.

Provides:
- get_active_hints(): hints eligible at a node for a state snapshot
- record_hint_response(): select and log the outcome of a response
- get_hint_streaks(): trailing follow/ignore runs and opposite count
- get_chain_progress(): display progress through a hint chain
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, List, Sequence

from ...logging import rule_audit
from ..campaign import (Hint, HintChain, HintResponse, HintResponseRecord,
                        HintStreaks, enum_value)
from ..state import SessionState
from .conditions import evaluate_hint_conditions

if TYPE_CHECKING:
    from .context import SessionContext

logger = logging.getLogger(__name__)

VALID_RESPONSES = {r.value for r in HintResponse}


@dataclass
class HintResolution:
    record: HintResponseRecord
    outcome: dict


@dataclass
class ChainProgress:
    chain_id: str
    chain_name: str
    responded_hint_ids: List[str] = field(default_factory=list)
    remaining_hint_ids: List[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return bool(self.responded_hint_ids) and not self.remaining_hint_ids


class HintSystem:
    """
    Usage:
        hints = HintSystem(ctx)
        visible = hints.get_active_hints(node_id, state, campaign_hints)
        resolution = await hints.record_hint_response(session_id, hint, character_id, "followed")
    """

    def __init__(self, ctx: "SessionContext") -> None:
        self.ctx = ctx

    def get_active_hints(
        self, node_id: str | None, state: SessionState, hints: Iterable[Hint]
    ) -> List[Hint]:
        """Hints that are global or pinned to node_id and whose conditions all hold."""
        return [
            hint for hint in hints
            if hint.is_active
            and (hint.node_id is None or hint.node_id == node_id)
            and evaluate_hint_conditions(hint.conditions, state)
        ]

    async def record_hint_response(
        self,
        session_id: str,
        hint: Hint,
        character_id: str,
        response: str,
    ) -> HintResolution:
        """
        Select the outcome for response and append it to the response log.

        The outcome is copied into the record's context alongside the
        red-herring flag. Raises ValueError for an unknown response and
        PersistenceError when the append fails.
        """
        response = enum_value(response)
        if response not in VALID_RESPONSES:
            raise ValueError(f"unknown hint response: {response!r}")

        outcome = dict(hint.outcome_for(response) or {})
        record = await self.ctx.store.append_hint_response(
            session_id,
            hint.id,
            character_id,
            response,
            {"outcome": outcome, "is_red_herring": hint.is_red_herring},
        )
        rule_audit.log_hint_response(session_id, character_id, hint.id, response)
        return HintResolution(record=record, outcome=outcome)

    async def load_responses(
        self, session_id: str, character_id: str | None = None
    ) -> List[HintResponseRecord]:
        return await self.ctx.store.get_hint_responses(session_id, character_id)

    def get_hint_streaks(self, responses: Sequence[HintResponseRecord]) -> HintStreaks:
        """
        Derive streaks from responses in append order.

        follow_streak and ignore_streak count the trailing run of that
        response; opposite_count counts every opposite response.
        """
        streaks = HintStreaks()
        streaks.opposite_count = sum(
            1 for r in responses if r.response == HintResponse.OPPOSITE.value
        )
        for r in reversed(responses):
            if r.response != HintResponse.FOLLOWED.value:
                break
            streaks.follow_streak += 1
        for r in reversed(responses):
            if r.response != HintResponse.IGNORED.value:
                break
            streaks.ignore_streak += 1
        return streaks

    def get_chain_progress(
        self, chain: HintChain, responses: Iterable[HintResponseRecord]
    ) -> ChainProgress:
        answered = {r.hint_id for r in responses}
        progress = ChainProgress(chain_id=chain.id, chain_name=chain.chain_name)
        for hint_id in chain.hint_ids:
            if hint_id in answered:
                progress.responded_hint_ids.append(hint_id)
            else:
                progress.remaining_hint_ids.append(hint_id)
        return progress
