"""Projects a room's snapshot stream into one client's local view."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from .game import Cell, Line, Player, Winner, find_winning_line
from .models import RoomDocument, RoomStatus
from .rooms import RoomRepository
from .store import Unsubscribe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoomView:
    """What one client knows about the room after the latest snapshot."""

    code: str
    my_symbol: Player
    status: RoomStatus
    board: List[Cell]
    current_turn: Player
    winner: Optional[Winner]
    winning_line: Optional[Line]
    my_name: str
    opponent_name: str
    opponent_connected: bool
    opponent_disconnected: bool

    @property
    def is_my_turn(self) -> bool:
        return self.winner is None and self.current_turn == self.my_symbol

    def to_payload(self) -> dict:
        return {
            "code": self.code,
            "mySymbol": self.my_symbol,
            "status": self.status.value,
            "board": list(self.board),
            "currentTurn": self.current_turn,
            "isMyTurn": self.is_my_turn,
            "winner": self.winner,
            "winningLine": list(self.winning_line) if self.winning_line else None,
            "myName": self.my_name,
            "opponentName": self.opponent_name,
            "opponentConnected": self.opponent_connected,
            "opponentDisconnected": self.opponent_disconnected,
        }


class RoomSynchronizer:
    """Subscribes to one room and derives board, turn and connectivity signals.

    The "opponent joined" signal is latched: it fires at most once per
    attachment, and only while the synchronizer is still in lobby mode (the
    room creator waiting for a second player).
    """

    def __init__(
        self,
        repository: RoomRepository,
        code: str,
        my_symbol: Player,
        *,
        in_lobby: Optional[bool] = None,
        on_update: Optional[Callable[[RoomView], None]] = None,
        on_opponent_joined: Optional[Callable[[RoomView], None]] = None,
        on_opponent_disconnected: Optional[Callable[[RoomView], None]] = None,
        on_opponent_reconnected: Optional[Callable[[RoomView], None]] = None,
    ):
        self.repository = repository
        self.code = code
        self.my_symbol = my_symbol
        # The creator starts out waiting; a joiner goes straight to play
        self.in_lobby = (my_symbol == "X") if in_lobby is None else in_lobby
        self.on_update = on_update
        self.on_opponent_joined = on_opponent_joined
        self.on_opponent_disconnected = on_opponent_disconnected
        self.on_opponent_reconnected = on_opponent_reconnected

        self.view: Optional[RoomView] = None
        self._joined_latch = False
        self._opponent_seen = False
        self._disconnected = False
        self._unsubscribe: Optional[Unsubscribe] = None

    @property
    def attached(self) -> bool:
        return self._unsubscribe is not None

    @property
    def opponent_disconnected(self) -> bool:
        return self._disconnected

    def attach(self) -> None:
        if self._unsubscribe is not None:
            return
        self._joined_latch = False
        # Player1 is seated on creation, so a joiner has always seen the host
        self._opponent_seen = self.my_symbol == "O"
        self._disconnected = False
        logger.debug("Subscribing to room %s as %s", self.code, self.my_symbol)
        self._unsubscribe = self.repository.subscribe_to_room(
            self.code, self.handle_snapshot
        )

    def detach(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            logger.debug("Unsubscribing from room %s", self.code)
            unsubscribe()

    def handle_snapshot(self, room: RoomDocument) -> RoomView:
        me = room.players.slot_for(self.my_symbol)
        opponent = room.players.opponent_of(self.my_symbol)

        if room.winner is not None and room.winner != "draw":
            winning_line = find_winning_line(room.board)
        else:
            winning_line = None

        first_join = False
        if opponent.joined and not self._joined_latch:
            # Latch before signalling so a re-entrant snapshot cannot fire twice
            self._joined_latch = True
            first_join = self.in_lobby
            self.in_lobby = False

        was_disconnected = self._disconnected
        if opponent.joined:
            self._opponent_seen = True
            self._disconnected = False
        elif room.winner is not None:
            self._disconnected = False
        elif self._opponent_seen:
            self._disconnected = True

        self.view = RoomView(
            code=self.code,
            my_symbol=self.my_symbol,
            status=room.status,
            board=list(room.board),
            current_turn=room.current_turn,
            winner=room.winner,
            winning_line=winning_line,
            my_name=me.name,
            opponent_name=opponent.name,
            opponent_connected=opponent.joined,
            opponent_disconnected=self._disconnected,
        )
        view = self.view

        if self.on_update is not None:
            self.on_update(view)
        if first_join:
            logger.info("Opponent %s joined room %s", opponent.name, self.code)
            if self.on_opponent_joined is not None:
                self.on_opponent_joined(view)
        if self._disconnected and not was_disconnected:
            logger.info("Opponent disconnected from room %s", self.code)
            if self.on_opponent_disconnected is not None:
                self.on_opponent_disconnected(view)
        elif was_disconnected and not self._disconnected and opponent.joined:
            if self.on_opponent_reconnected is not None:
                self.on_opponent_reconnected(view)
        return view
