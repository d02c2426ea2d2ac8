# backend/chronicles/main.py
import asyncio
import contextlib
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse

from . import config
from .db import create_tables, make_session_factory
from .engine import (ChronicleEngine, ChronicleStore, InvalidTransitionError,
                     NotFoundError, PersistenceError)
from .logging import configure_logging
from .routes.sessions import router as sessions_router

logger = logging.getLogger(__name__)


def create_app(database_url: Optional[str] = None) -> FastAPI:
    """
    Build the API application.

    database_url overrides CHRONICLES_DATABASE_URL (tests use an in-memory
    database per app).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        - Create tables (dev-time; later use migrations).
        - Build the store and a single ChronicleEngine shared by all requests.
        """
        configure_logging(config.LOG_LEVEL)

        if database_url is None:
            from .db import AsyncSessionLocal, engine as db_engine
            session_factory = AsyncSessionLocal
        else:
            db_engine, session_factory = make_session_factory(database_url)

        # 1) Create tables
        await create_tables(db_engine)

        # 2) Create store and engine
        store = ChronicleStore(session_factory)
        app.state.chronicle_store = store
        app.state.chronicle_engine = ChronicleEngine(store)
        logger.info("Chronicle engine started")

        yield

        # Shutdown
        app.state.chronicle_engine = None
        await db_engine.dispose()
        logger.info("Chronicle engine stopped")

    app = FastAPI(title="Lore Chronicles", lifespan=lifespan)
    app.state.chronicle_engine = None

    # ---------- Error mapping ----------

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(InvalidTransitionError)
    async def transition_handler(request: Request, exc: InvalidTransitionError):
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})

    @app.exception_handler(PersistenceError)
    async def persistence_handler(request: Request, exc: PersistenceError):
        logger.error("Persistence failure on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)}
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)}
        )

    # ---------- HTTP Endpoints ----------

    @app.get("/")
    async def root():
        return {"message": "Lore Chronicles rule engine"}

    app.include_router(sessions_router)

    # ---------- WebSocket ----------

    @app.websocket("/ws/sessions/{session_id}")
    async def session_ws(
        websocket: WebSocket,
        session_id: str,
        user_id: str = Query(...),
        username: Optional[str] = Query(None),
        character_id: Optional[str] = Query(None),
    ) -> None:
        """
        Session feed.

        - client connects: /ws/sessions/{id}?user_id=...&username=...&character_id=...
        - client sends: {"type": "heartbeat"} or
          {"type": "choice", "choice_text": "...", "next_node_id": "..."}
        - server sends: message, session_update, state_update, trigger_fired,
          cascade_applied, hint_outcome, random_event, combat_update and
          presence_sync events
        """
        await websocket.accept()
        engine: Optional[ChronicleEngine] = getattr(websocket.app.state, "chronicle_engine", None)
        if engine is None:
            await websocket.close(code=1011, reason="Chronicle engine not ready")
            return

        try:
            await engine.store.get_session(session_id)
        except NotFoundError:
            logger.info("WS connection rejected for unknown session %s", session_id)
            await websocket.close(code=1008, reason="Unknown session")
            return

        client_id = str(uuid.uuid4())
        event_queue = engine.ctx.register_listener(session_id, client_id)
        await engine.synchronizer.track(session_id, user_id, username, character_id)
        logger.info("User %s connected to session %s", user_id, session_id)

        send_task = asyncio.create_task(_ws_sender(websocket, event_queue))
        recv_task = asyncio.create_task(
            _ws_receiver(websocket, engine, session_id, user_id, character_id)
        )

        try:
            done, pending = await asyncio.wait(
                {send_task, recv_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            # If either sender or receiver stops, cancel the other
            for task in pending:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        finally:
            engine.ctx.unregister_listener(session_id, client_id)
            await engine.synchronizer.untrack(session_id, user_id)
            logger.info("User %s left session %s", user_id, session_id)

    return app


async def _ws_receiver(
    websocket: WebSocket,
    engine: ChronicleEngine,
    session_id: str,
    user_id: str,
    character_id: Optional[str],
) -> None:
    """
    Receives messages from the client: heartbeats and choices.
    """
    try:
        while True:
            data = await websocket.receive_json()
            msg_type = data.get("type")
            if msg_type == "heartbeat":
                await engine.synchronizer.heartbeat(session_id, user_id)
            elif msg_type == "choice" and character_id:
                try:
                    await engine.make_choice(
                        session_id,
                        character_id,
                        str(data.get("choice_text", "")),
                        data.get("next_node_id"),
                    )
                except (NotFoundError, PersistenceError) as exc:
                    await websocket.send_json({"type": "error", "text": str(exc)})
            else:
                logger.debug("Ignoring unknown WS message type: %s", msg_type)
    except WebSocketDisconnect:
        # Normal disconnect; let session_ws handle cleanup
        logger.info("WebSocketDisconnect for user %s in session %s", user_id, session_id)
    except Exception as exc:
        logger.exception("Error in _ws_receiver for user %s: %s", user_id, exc)


async def _ws_sender(
    websocket: WebSocket,
    event_queue: asyncio.Queue[dict],
) -> None:
    """
    Sends session events to the client.
    """
    try:
        while True:
            ev = await event_queue.get()
            await websocket.send_json(ev)
    except WebSocketDisconnect:
        pass
    except Exception as exc:
        logger.exception("Error in _ws_sender: %s", exc)


app = create_app()
