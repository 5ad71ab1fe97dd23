"""Room lifecycle and data access against the shared document store."""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Dict, Optional, Sequence

from pydantic import ValidationError

from .errors import (
    InvalidCode,
    RoomAllocationError,
    RoomFull,
    RoomNotFound,
    StorageUnavailable,
)
from .game import Cell, Player, Winner
from .models import PlayerSlot, RoomDocument, RoomStatus
from .store import StoreClient, Unsubscribe

logger = logging.getLogger(__name__)

ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 4
ROOM_ALLOCATION_ATTEMPTS = 10
ROOMS_PATH = "rooms"
VISITOR_COUNT_PATH = "stats/visitorCount"

RoomListener = Callable[[RoomDocument], None]


def now_ms() -> int:
    return int(time.time() * 1000)


def room_path(code: str, *parts: str) -> str:
    return "/".join((ROOMS_PATH, code) + parts)


def normalize_code(code: str) -> str:
    """Upper-case and validate a user supplied room code."""
    normalized = (code or "").strip().upper()
    if len(normalized) != ROOM_CODE_LENGTH:
        raise InvalidCode(f"Room codes are {ROOM_CODE_LENGTH} characters long")
    if any(ch not in ROOM_CODE_ALPHABET for ch in normalized):
        raise InvalidCode(f"Room code {normalized!r} has invalid characters")
    return normalized


def _noop() -> None:
    return None


class RoomRepository:
    """Creates, joins, updates and observes rooms for one client connection."""

    def __init__(
        self,
        client: StoreClient,
        *,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.client = client
        self._rng = rng or random.Random()
        self._clock = clock or now_ms
        self._last_timestamp = 0

    def generate_code(self) -> str:
        return "".join(
            self._rng.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH)
        )

    def _timestamp(self) -> int:
        # Advisory only, but never moves backwards for this writer
        self._last_timestamp = max(self._last_timestamp, self._clock())
        return self._last_timestamp

    # ---- lifecycle ----

    async def create_room(self, display_name: str) -> str:
        if not self.client.available:
            raise StorageUnavailable("Cannot create a room without a store")

        document = RoomDocument.new(display_name, self._timestamp()).to_document()

        def claim(current: Any) -> Optional[Dict[str, Any]]:
            return document if current is None else None

        for _ in range(ROOM_ALLOCATION_ATTEMPTS):
            code = self.generate_code()
            committed, _ = await self.client.transaction(room_path(code), claim)
            if committed:
                break
            logger.info("Room code %s already taken, drawing another", code)
        else:
            raise RoomAllocationError("Unable to allocate room")

        self.client.on_disconnect(room_path(code, "players", "player1", "joined")).set(
            False
        )
        logger.info("Created room %s for %s", code, display_name)
        return code

    async def join_room(self, code: str, display_name: str) -> bool:
        code = normalize_code(code)
        if not self.client.available:
            raise StorageUnavailable("Cannot join a room without a store")

        guest = PlayerSlot(name=display_name, symbol="O", joined=True)

        def seat_guest(current: Any) -> Dict[str, Any]:
            if current is None:
                raise RoomNotFound(f"Room {code} does not exist")
            try:
                room = RoomDocument.model_validate(current)
            except ValidationError as exc:
                raise RoomNotFound(f"Room {code} is not a usable room") from exc
            if room.players.player2.joined:
                raise RoomFull(f"Room {code} is full")
            room.players.player2 = guest
            room.status = RoomStatus.PLAYING
            return room.to_document()

        try:
            await self.client.transaction(room_path(code), seat_guest)
        except (RoomNotFound, RoomFull) as exc:
            logger.warning("Join rejected: %s", exc.message)
            return False

        self.client.on_disconnect(room_path(code, "players", "player2", "joined")).set(
            False
        )
        logger.info("%s joined room %s", display_name, code)
        return True

    async def leave_room(self, code: str, is_player1: bool) -> None:
        if not self.client.available:
            return
        slot = "player1" if is_player1 else "player2"
        joined_path = room_path(code, "players", slot, "joined")
        await self.client.multi_update({joined_path: False})
        # The seat is given up; a later disconnect must not touch its next owner
        self.client.on_disconnect(joined_path).cancel()
        logger.info("%s left room %s", slot, code)

    # ---- game state ----

    async def update_game_state(
        self,
        code: str,
        board: Sequence[Cell],
        next_turn: Player,
        winner: Optional[Winner],
    ) -> None:
        updates: Dict[str, Any] = {
            room_path(code, "board"): list(board),
            room_path(code, "currentTurn"): next_turn,
            room_path(code, "lastMoveTimestamp"): self._timestamp(),
            # None clears a previous result when the board is reset
            room_path(code, "winner"): winner,
        }
        if winner is not None:
            updates[room_path(code, "status")] = RoomStatus.FINISHED.value
            logger.info("Room %s finished, winner: %s", code, winner)
        else:
            updates[room_path(code, "status")] = RoomStatus.PLAYING.value
        logger.debug("Pushing state for room %s, next turn %s", code, next_turn)
        await self.client.multi_update(updates)

    async def get_room(self, code: str) -> Optional[RoomDocument]:
        value = await self.client.read(room_path(code))
        if value is None:
            return None
        return RoomDocument.model_validate(value)

    def subscribe_to_room(self, code: str, on_change: RoomListener) -> Unsubscribe:
        if not self.client.available:
            logger.error("Store unavailable, cannot subscribe to room %s", code)
            return _noop

        def deliver(value: Any) -> None:
            if value is None:
                logger.warning("Room data is null for code %s", code)
                return
            logger.debug("Room %s update: %s", code, value)
            on_change(RoomDocument.model_validate(value))

        return self.client.subscribe(room_path(code), deliver)

    # ---- counters ----

    async def increment_visitor_count(self) -> int:
        _, value = await self.client.transaction(
            VISITOR_COUNT_PATH, lambda current: (current or 0) + 1
        )
        return int(value or 0)

    async def get_visitor_count(self) -> int:
        return int(await self.client.read(VISITOR_COUNT_PATH) or 0)
