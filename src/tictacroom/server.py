"""FastAPI application: offline games over REST, online rooms over a WebSocket."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import (
    BackgroundTasks,
    FastAPI,
    HTTPException,
    WebSocket,
    WebSocketDisconnect,
)
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .ai import DIFFICULTIES, Difficulty
from .config import Config
from .errors import InvalidCode, RoomAllocationError, StorageUnavailable
from .game import Player
from .match import GameMode, MatchController
from .rooms import RoomRepository, normalize_code
from .store import DocumentStore, StoreClient
from .sync import RoomSynchronizer, RoomView

logger = logging.getLogger(__name__)


@dataclass
class GameSession:
    """Container for an offline match and its player names."""

    controller: MatchController
    player1_name: str
    player2_name: str


SESSIONS: Dict[str, GameSession] = {}
STORE = DocumentStore()
SERVER_CLIENT = StoreClient(STORE, name="server")
SERVER_ROOMS = RoomRepository(SERVER_CLIENT)

app = FastAPI(title="TicTacRoom", description="Tic-tac-toe with local AI and online rooms")

AI_THINK_DELAY: float = Config.AI_THINK_DELAY_SEC
DEFAULT_DIFFICULTY: Difficulty = (
    Config.DEFAULT_DIFFICULTY if Config.DEFAULT_DIFFICULTY in DIFFICULTIES else "MEDIUM"  # type: ignore[assignment]
)


class NewGameRequest(BaseModel):
    """Request payload for starting an offline game."""

    mode: GameMode = GameMode.SINGLE
    difficulty: Difficulty = Field(
        default=DEFAULT_DIFFICULTY,
        description="AI strength for single player games",
    )

    @field_validator("mode")
    @classmethod
    def ensure_offline_mode(cls, value: GameMode) -> GameMode:
        if value is GameMode.ONLINE:
            raise ValueError("Online games are played over the /ws/room socket")
        return value


class MoveRequest(BaseModel):
    """Request payload for submitting a move on an existing game."""

    model_config = ConfigDict(populate_by_name=True)

    cell_index: int = Field(alias="cellIndex", ge=0, le=8)


def _create_session(mode: GameMode, difficulty: Difficulty) -> tuple[str, GameSession]:
    controller = MatchController(
        mode, difficulty=difficulty, think_delay=AI_THINK_DELAY
    )
    if mode is GameMode.SINGLE:
        session = GameSession(controller, "You", f"AI ({difficulty})")
    else:
        session = GameSession(controller, "Player 1", "Player 2")
    session_id = uuid.uuid4().hex
    SESSIONS[session_id] = session
    return session_id, session


def _get_session(game_id: str) -> GameSession:
    try:
        return SESSIONS[game_id]
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Game not found") from exc


async def _run_ai_turn(game_id: str) -> None:
    session = SESSIONS.get(game_id)
    if not session:
        return
    await session.controller.run_ai_turn()


def _serialize_session(game_id: str, session: GameSession) -> Dict[str, object]:
    controller = session.controller
    state = controller.state
    payload: Dict[str, object] = {
        "id": game_id,
        "mode": controller.mode.value,
        "difficulty": controller.difficulty,
        "players": {"X": session.player1_name, "O": session.player2_name},
        "board": list(state.board),
        "currentPlayer": state.current_turn,
        "status": state.status.value,
        "winner": state.winner,
        "winningLine": list(state.winning_line) if state.winning_line else None,
        "moveLog": list(controller.move_log),
        "aiPending": controller.ai_pending,
        "scores": controller.scores.to_payload(),
    }
    if controller.move_log:
        payload["lastMove"] = controller.move_log[-1]
    return payload


async def _apply_player_move(
    game_id: str,
    session: GameSession,
    cell_index: int,
    background_tasks: Optional[BackgroundTasks] = None,
) -> None:
    controller = session.controller
    if controller.state.is_terminal:
        raise HTTPException(status_code=400, detail="Game already finished")
    if controller.ai_pending:
        raise HTTPException(status_code=400, detail="AI is completing its move")
    if not await controller.attempt_move(cell_index):
        raise HTTPException(status_code=400, detail="Move is not allowed on this turn")

    if controller.ai_turn_due:
        controller.ai_pending = True
        if background_tasks is not None:
            background_tasks.add_task(_run_ai_turn, game_id)


@app.get("/api/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/api/game")
def create_game(request: NewGameRequest) -> Dict[str, object]:
    game_id, session = _create_session(request.mode, request.difficulty)
    return _serialize_session(game_id, session)


@app.get("/api/game/{game_id}")
def get_game(game_id: str) -> Dict[str, object]:
    session = _get_session(game_id)
    return _serialize_session(game_id, session)


@app.post("/api/game/{game_id}/move")
async def make_move(
    game_id: str, request: MoveRequest, background_tasks: BackgroundTasks
) -> Dict[str, object]:
    session = _get_session(game_id)
    await _apply_player_move(game_id, session, request.cell_index, background_tasks)
    return _serialize_session(game_id, session)


@app.post("/api/game/{game_id}/reset")
async def reset_game(game_id: str) -> Dict[str, object]:
    session = _get_session(game_id)
    await session.controller.play_again()
    return _serialize_session(game_id, session)


@app.post("/api/visit")
async def register_visit() -> Dict[str, int]:
    return {"visitors": await SERVER_ROOMS.increment_visitor_count()}


@app.get("/api/visit")
async def visitor_count() -> Dict[str, int]:
    return {"visitors": await SERVER_ROOMS.get_visitor_count()}


@app.get("/api/room/{room_code}")
async def inspect_room(room_code: str) -> Dict[str, object]:
    try:
        code = normalize_code(room_code)
    except InvalidCode as exc:
        raise HTTPException(status_code=404, detail="Room not found") from exc
    room = await SERVER_ROOMS.get_room(code)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return {
        "roomCode": code,
        "available": not room.players.player2.joined,
        "room": room.to_document(),
    }


class RoomConnection:
    """One websocket peer acting as an online client.

    Each connection owns its own store client, so closing the socket is the
    transport-level disconnect that fires the player's deferred writes.
    """

    def __init__(self, websocket: WebSocket, store: DocumentStore):
        self.websocket = websocket
        self.client = StoreClient(store, name=f"ws-{uuid.uuid4().hex[:8]}")
        self.repository = RoomRepository(self.client)
        self.synchronizer: Optional[RoomSynchronizer] = None
        self.controller: Optional[MatchController] = None
        self._loop = asyncio.get_running_loop()
        self._outbox: asyncio.Queue[Dict[str, Any]] = asyncio.Queue()

    def send(self, message: Dict[str, Any]) -> None:
        # Snapshots may be delivered from whichever thread committed the write
        self._loop.call_soon_threadsafe(self._outbox.put_nowait, message)

    async def pump(self) -> None:
        try:
            while True:
                message = await self._outbox.get()
                await self.websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError):
            pass

    async def handle(self, message: Dict[str, Any]) -> None:
        if not isinstance(message, dict):
            self._error("Unknown message type")
            return
        kind = message.get("type")
        try:
            if kind == "create":
                await self._create(str(message.get("name") or "Player 1"))
            elif kind == "join":
                await self._join(
                    str(message.get("code") or ""),
                    str(message.get("name") or "Player 2"),
                )
            elif kind == "move":
                await self._move(message.get("cellIndex"))
            elif kind == "playAgain":
                await self._play_again()
            elif kind == "leave":
                await self._leave()
            else:
                self._error("Unknown message type")
        except InvalidCode:
            self._error("Invalid code")
        except (StorageUnavailable, RoomAllocationError) as exc:
            logger.error("Room request failed: %s", exc)
            self._error("Connection error")

    async def _create(self, name: str) -> None:
        if self.controller is not None:
            self._error("Already in a room")
            return
        code = await self.repository.create_room(name)
        self._enter_room(code, "X")

    async def _join(self, code: str, name: str) -> None:
        if self.controller is not None:
            self._error("Already in a room")
            return
        code = normalize_code(code)
        if not await self.repository.join_room(code, name):
            self._error("Room not found or full")
            return
        self._enter_room(code, "O")

    async def _move(self, cell_index: Any) -> None:
        if self.controller is None:
            self._error("Not in a room")
            return
        if not isinstance(cell_index, int) or not await self.controller.attempt_move(
            cell_index
        ):
            self._error("Move rejected")

    async def _play_again(self) -> None:
        if self.controller is None or not await self.controller.play_again():
            self._error("Cannot restart yet")

    async def _leave(self) -> None:
        if self.controller is None:
            return
        code = self.controller.room_code
        await self.controller.leave()
        self._exit_room()
        self.send({"type": "left", "code": code})

    def _enter_room(self, code: str, symbol: Player) -> None:
        self.controller = MatchController(
            GameMode.ONLINE,
            repository=self.repository,
            room_code=code,
            my_symbol=symbol,
        )
        self.synchronizer = RoomSynchronizer(
            self.repository,
            code,
            symbol,
            on_update=self._on_update,
            on_opponent_joined=self._on_opponent_joined,
            on_opponent_disconnected=self._on_opponent_left,
            on_opponent_reconnected=self._on_opponent_joined,
        )
        self.send({"type": "room", "code": code, "symbol": symbol})
        self.synchronizer.attach()

    def _exit_room(self) -> None:
        if self.synchronizer is not None:
            self.synchronizer.detach()
        self.synchronizer = None
        self.controller = None

    def _on_update(self, view: RoomView) -> None:
        if self.controller is None:
            return
        self.controller.apply_view(view)
        payload = view.to_payload()
        payload["scores"] = self.controller.scores.to_payload()
        self.send({"type": "state", **payload})

    def _on_opponent_joined(self, view: RoomView) -> None:
        self.send({"type": "peer-status", "status": "joined", "name": view.opponent_name})

    def _on_opponent_left(self, view: RoomView) -> None:
        self.send({"type": "peer-status", "status": "left"})

    def _error(self, message: str) -> None:
        self.send({"type": "error", "message": message})

    def close(self) -> None:
        self._exit_room()
        self.client.disconnect()


@app.websocket("/ws/room")
async def room_socket(websocket: WebSocket) -> None:
    await websocket.accept()
    connection = RoomConnection(websocket, STORE)
    pump = asyncio.create_task(connection.pump())
    try:
        while True:
            message = await websocket.receive_json()
            await connection.handle(message)
    except WebSocketDisconnect:
        pass
    finally:
        connection.close()
        pump.cancel()
