# backend/chronicles/routes/sessions.py
"""
Session API Routes

Provides REST endpoints over the rule engine:
- Campaign import and characters
- Sessions, participants, turns and presence
- Choices, interaction outcomes and cascade status
- Hints and hint responses
- Trigger and random event logs
- Combat encounters and bluffs

Engine errors are mapped to HTTP status codes by the handlers registered in
main.create_app.
"""

from dataclasses import asdict
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from ..engine import ChronicleEngine
from ..engine.campaign import CombatParticipant
from ..engine.loader import import_campaign, parse_campaign
from ..engine.state import CharacterRecord, clamp_stat
from ..logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["sessions"])


# ============================================================================
# Dependencies
# ============================================================================

def get_engine_from_request(request: Request) -> ChronicleEngine:
    """Get the ChronicleEngine from app.state."""
    engine = getattr(request.app.state, "chronicle_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Chronicle engine not initialized"
        )
    return engine


# ============================================================================
# Request / Response Models
# ============================================================================

class CampaignImportResponse(BaseModel):
    campaign_id: str
    imported: bool
    triggers: int = 0
    cascade_rules: int = 0
    hints: int = 0
    hint_chains: int = 0
    random_events: int = 0
    skipped: int = 0


class CharacterCreate(BaseModel):
    id: str
    name: str
    user_id: Optional[str] = None
    stats: dict[str, int] = Field(default_factory=dict)
    inventory: list[str] = Field(default_factory=list)


class CharacterResponse(BaseModel):
    id: str
    name: str
    user_id: Optional[str] = None
    level: int
    experience: int
    stats: dict[str, int]
    inventory: list[str]


class SessionCreate(BaseModel):
    campaign_id: str
    session_id: Optional[str] = None
    current_node_id: Optional[str] = None
    turn_order: list[str] = Field(default_factory=list)
    location: Optional[str] = None
    story_flags: dict[str, Any] = Field(default_factory=dict)


class SessionResponse(BaseModel):
    id: str
    campaign_id: str
    current_node_id: Optional[str] = None
    current_turn_player_id: Optional[str] = None
    turn_order: list[str]
    status: str
    story_flags: dict[str, Any]
    turn_count: int
    location: Optional[str] = None


class JoinRequest(BaseModel):
    character_id: str


class ChoiceRequest(BaseModel):
    character_id: str
    choice_text: str = Field(..., min_length=1)
    next_node_id: Optional[str] = None


class NodeUpdateRequest(BaseModel):
    node_id: str


class TurnOrderRequest(BaseModel):
    turn_order: list[str]


class InteractionCompleteRequest(BaseModel):
    character_id: str
    outcome_type: str = Field(..., description="good, bad or neutral")


class HintResponseRequest(BaseModel):
    character_id: str
    response: str = Field(..., description="followed, ignored or opposite")


class ParticipantSpec(BaseModel):
    character_id: str
    role: str = "participant"
    visible_equipment: list[str] = Field(default_factory=list)


class CombatStartRequest(BaseModel):
    combat_type: str = Field(..., description="pvp, pve or duel")
    participants: list[ParticipantSpec]
    node_id: Optional[str] = None
    stats_hidden: bool = True


class CombatStatusRequest(BaseModel):
    status: str


class CombatReadyRequest(BaseModel):
    character_id: str


class CombatResolveRequest(BaseModel):
    outcome: dict[str, Any] = Field(default_factory=dict)


class BluffRequest(BaseModel):
    actor_id: str
    target_id: str
    attempt_type: str = Field(..., description="flex, feign_weakness, scout or intimidate")


def _session_response(record) -> SessionResponse:
    return SessionResponse(**record.to_dict())


def _character_response(record: CharacterRecord) -> CharacterResponse:
    return CharacterResponse(**asdict(record))


def _encounter_response(encounter) -> dict[str, Any]:
    return asdict(encounter)


# ============================================================================
# Campaigns & Characters
# ============================================================================

@router.post("/campaigns", response_model=CampaignImportResponse, status_code=status.HTTP_201_CREATED)
async def import_campaign_document(
    document: dict[str, Any],
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    """Import a campaign document (same shape as a campaign YAML file)."""
    parsed = parse_campaign(document)
    imported = await import_campaign(engine.store, parsed, "api")
    engine.invalidate(parsed.campaign_id)
    return CampaignImportResponse(
        campaign_id=parsed.campaign_id,
        imported=imported,
        triggers=len(parsed.triggers),
        cascade_rules=len(parsed.cascade_rules),
        hints=len(parsed.hints),
        hint_chains=len(parsed.hint_chains),
        random_events=len(parsed.random_events),
        skipped=parsed.skipped,
    )


@router.post("/campaigns/{campaign_id}/reload")
async def reload_campaign(
    campaign_id: str,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    defs = await engine.definitions(campaign_id, refresh=True)
    return {
        "campaign_id": campaign_id,
        "triggers": len(defs.triggers),
        "cascade_rules": len(defs.cascade_rules),
        "hints": len(defs.hints),
        "random_events": len(defs.random_events),
    }


@router.post("/characters", response_model=CharacterResponse, status_code=status.HTTP_201_CREATED)
async def create_character(
    body: CharacterCreate,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    record = CharacterRecord(
        id=body.id,
        name=body.name,
        user_id=body.user_id,
        stats={k: clamp_stat(v) for k, v in body.stats.items()},
        inventory=list(dict.fromkeys(body.inventory)),
    )
    await engine.store.create_character(record)
    return _character_response(record)


@router.get("/characters/{character_id}", response_model=CharacterResponse)
async def get_character(
    character_id: str,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    return _character_response(await engine.store.get_character(character_id))


# ============================================================================
# Sessions, Turns & Presence
# ============================================================================

@router.post("/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    body: SessionCreate,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    if not await engine.store.campaign_exists(body.campaign_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"campaign '{body.campaign_id}' not found"
        )
    record = await engine.store.create_session(
        body.campaign_id,
        body.session_id,
        current_node_id=body.current_node_id,
        turn_order=body.turn_order,
        location=body.location,
        story_flags=body.story_flags,
    )
    return _session_response(record)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    return _session_response(await engine.store.get_session(session_id))


@router.post("/sessions/{session_id}/participants", status_code=status.HTTP_201_CREATED)
async def join_session(
    session_id: str,
    body: JoinRequest,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    participant = await engine.store.add_participant(session_id, body.character_id)
    return asdict(participant)


@router.delete("/sessions/{session_id}/participants/{character_id}")
async def leave_session(
    session_id: str,
    character_id: str,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    await engine.store.remove_participant(session_id, character_id)
    return {"session_id": session_id, "character_id": character_id, "is_active": False}


@router.get("/sessions/{session_id}/participants")
async def list_participants(
    session_id: str,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    return [asdict(p) for p in await engine.synchronizer.participants(session_id)]


@router.get("/sessions/{session_id}/state")
async def get_state(
    session_id: str,
    character_id: str,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    state = await engine.build_state(session_id, character_id)
    data = asdict(state)
    data["inventory"] = list(state.inventory)
    return data


@router.put("/sessions/{session_id}/node", response_model=SessionResponse)
async def update_current_node(
    session_id: str,
    body: NodeUpdateRequest,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    return _session_response(await engine.synchronizer.update_current_node(session_id, body.node_id))


@router.put("/sessions/{session_id}/turn-order", response_model=SessionResponse)
async def set_turn_order(
    session_id: str,
    body: TurnOrderRequest,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    return _session_response(await engine.synchronizer.set_turn_order(session_id, body.turn_order))


@router.post("/sessions/{session_id}/turn/advance", response_model=SessionResponse)
async def advance_turn(
    session_id: str,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    record = await engine.synchronizer.advance_turn(session_id)
    if record is None:
        record = await engine.store.get_session(session_id)
    return _session_response(record)


@router.get("/sessions/{session_id}/turn")
async def get_turn(
    session_id: str,
    character_id: Optional[str] = None,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    sync = engine.synchronizer
    record = await sync.get_session(session_id)
    data = {
        "current_turn_player_id": record.current_turn_player_id,
        "current_turn_player_name": await sync.current_turn_player_name(session_id),
    }
    if character_id:
        data["is_my_turn"] = await sync.is_my_turn(session_id, character_id)
    return data


@router.get("/sessions/{session_id}/presence")
async def get_presence(
    session_id: str,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    return {"users": engine.synchronizer.presence_state(session_id)}


# ============================================================================
# Choices & Interactions
# ============================================================================

@router.post("/sessions/{session_id}/choices")
async def make_choice(
    session_id: str,
    body: ChoiceRequest,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    outcome = await engine.make_choice(
        session_id, body.character_id, body.choice_text, body.next_node_id
    )
    return outcome.to_dict()


@router.post("/sessions/{session_id}/interactions/{interaction_id}/complete")
async def complete_interaction(
    session_id: str,
    interaction_id: str,
    body: InteractionCompleteRequest,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    outcome = await engine.complete_interaction(
        session_id, body.character_id, interaction_id, body.outcome_type
    )
    return outcome.to_dict()


@router.get("/sessions/{session_id}/interactions/{interaction_id}/effects")
async def get_interaction_effects(
    session_id: str,
    interaction_id: str,
    character_id: Optional[str] = None,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    effects = await engine.get_interaction_effects(session_id, interaction_id, character_id)
    return asdict(effects)


@router.get("/sessions/{session_id}/interactions/{interaction_id}/summary")
async def get_cascade_summary(
    session_id: str,
    interaction_id: str,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    return {"effects": await engine.get_cascade_effects_summary(session_id, interaction_id)}


@router.get("/sessions/{session_id}/cascades")
async def list_applied_cascades(
    session_id: str,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    return [asdict(e) for e in await engine.cascade_system.load_applied_cascades(session_id)]


# ============================================================================
# Hints
# ============================================================================

@router.get("/sessions/{session_id}/hints")
async def get_active_hints(
    session_id: str,
    character_id: str,
    node_id: Optional[str] = None,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    hints = await engine.get_active_hints(session_id, character_id, node_id)
    # Outcomes stay server-side until the player responds
    return [
        {
            "id": h.id,
            "hint_type": h.hint_type,
            "hint_text": h.hint_text,
            "source_flavor": h.source_flavor,
            "node_id": h.node_id,
            "priority": h.priority,
        }
        for h in hints
    ]


@router.post("/sessions/{session_id}/hints/{hint_id}/responses")
async def respond_to_hint(
    session_id: str,
    hint_id: str,
    body: HintResponseRequest,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    outcome = await engine.respond_to_hint(session_id, body.character_id, hint_id, body.response)
    return outcome.to_dict()


@router.get("/sessions/{session_id}/hint-streaks")
async def get_hint_streaks(
    session_id: str,
    character_id: Optional[str] = None,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    return asdict(await engine.get_hint_streaks(session_id, character_id))


@router.get("/sessions/{session_id}/hint-chains")
async def get_hint_chains(
    session_id: str,
    character_id: Optional[str] = None,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    record = await engine.store.get_session(session_id)
    defs = await engine.definitions(record.campaign_id)
    responses = await engine.hint_system.load_responses(session_id, character_id)
    result = []
    for chain in defs.hint_chains:
        progress = engine.hint_system.get_chain_progress(chain, responses)
        result.append({
            **asdict(progress),
            "is_complete": progress.is_complete,
            "completion_reward": chain.completion_reward,
        })
    return result


# ============================================================================
# Logs
# ============================================================================

@router.get("/sessions/{session_id}/triggers/log")
async def get_trigger_log(
    session_id: str,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    return [asdict(f) for f in await engine.get_trigger_log(session_id)]


@router.get("/sessions/{session_id}/random-events/log")
async def get_random_event_log(
    session_id: str,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    return [asdict(e) for e in await engine.random_event_system.load_event_log(session_id)]


# ============================================================================
# Combat & Bluffs
# ============================================================================

@router.post("/sessions/{session_id}/combat", status_code=status.HTTP_201_CREATED)
async def start_combat(
    session_id: str,
    body: CombatStartRequest,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    await engine.store.get_session(session_id)
    encounter = await engine.combat_system.start_combat(
        session_id,
        body.combat_type,
        [CombatParticipant(**p.model_dump()) for p in body.participants],
        node_id=body.node_id,
        stats_hidden=body.stats_hidden,
    )
    await engine.event_dispatcher.dispatch([engine.event_dispatcher.combat_update(encounter)])
    return _encounter_response(encounter)


@router.get("/sessions/{session_id}/combat/active")
async def get_active_combat(
    session_id: str,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    encounter = await engine.combat_system.get_active_combat(session_id)
    return _encounter_response(encounter) if encounter else None


@router.post("/combat/{encounter_id}/status")
async def update_combat_status(
    encounter_id: str,
    body: CombatStatusRequest,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    encounter = await engine.combat_system.update_status(encounter_id, body.status)
    await engine.event_dispatcher.dispatch([engine.event_dispatcher.combat_update(encounter)])
    return _encounter_response(encounter)


@router.post("/combat/{encounter_id}/ready")
async def set_ready(
    encounter_id: str,
    body: CombatReadyRequest,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    encounter = await engine.combat_system.set_ready(encounter_id, body.character_id)
    await engine.event_dispatcher.dispatch([engine.event_dispatcher.combat_update(encounter)])
    return {**_encounter_response(encounter), "all_ready": engine.combat_system.all_ready(encounter)}


@router.post("/combat/{encounter_id}/resolve")
async def resolve_combat(
    encounter_id: str,
    body: CombatResolveRequest,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    encounter = await engine.combat_system.resolve_combat(encounter_id, body.outcome)
    await engine.event_dispatcher.dispatch([engine.event_dispatcher.combat_update(encounter)])
    return _encounter_response(encounter)


@router.post("/sessions/{session_id}/bluffs", status_code=status.HTTP_201_CREATED)
async def attempt_bluff(
    session_id: str,
    body: BluffRequest,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    """Roll a bluff using the stored stats of both characters."""
    await engine.store.get_session(session_id)
    actor = await engine.store.get_character(body.actor_id)
    target = await engine.store.get_character(body.target_id)
    attempt = await engine.combat_system.attempt_bluff(
        session_id, actor.id, target.id, body.attempt_type, actor.stats, target.stats
    )
    return asdict(attempt)


@router.get("/sessions/{session_id}/bluffs")
async def get_bluff_history(
    session_id: str,
    character_id: str,
    engine: ChronicleEngine = Depends(get_engine_from_request),
):
    return [asdict(b) for b in await engine.combat_system.get_bluff_history(session_id, character_id)]
