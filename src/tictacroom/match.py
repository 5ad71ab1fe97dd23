"""Turn and result state machine shared by offline and online play."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from .ai import Difficulty, choose_move
from .config import Config
from .errors import TicTacRoomError
from .game import BOARD_SIZE, Cell, MatchState, Player, Winner, other
from .models import RoomStatus
from .rooms import RoomRepository
from .sync import RoomView

logger = logging.getLogger(__name__)

AI_SYMBOL: Player = "O"
HUMAN_SYMBOL: Player = "X"

MoveChooser = Callable[[Sequence[Cell], Difficulty], int]


class GameMode(str, Enum):
    SINGLE = "SINGLE"
    LOCAL = "LOCAL"
    ONLINE = "ONLINE"


@dataclass
class Scoreboard:
    x: int = 0
    o: int = 0
    draws: int = 0

    def record(self, winner: Winner) -> None:
        if winner == "draw":
            self.draws += 1
        elif winner == "X":
            self.x += 1
        else:
            self.o += 1

    def to_payload(self) -> Dict[str, int]:
        return {"X": self.x, "O": self.o, "draws": self.draws}


class MatchController:
    """Owns whose turn it is, which moves are legal and how a match ends.

    Offline (``SINGLE``/``LOCAL``) the local state is the only copy. Online,
    moves are applied locally first and then pushed to the room; snapshots
    coming back through ``apply_view`` are authoritative.
    """

    def __init__(
        self,
        mode: GameMode = GameMode.LOCAL,
        *,
        repository: Optional[RoomRepository] = None,
        room_code: Optional[str] = None,
        my_symbol: Optional[Player] = None,
        difficulty: Difficulty = "MEDIUM",
        chooser: MoveChooser = choose_move,
        think_delay: float = Config.AI_THINK_DELAY_SEC,
    ):
        if mode is GameMode.ONLINE and (
            repository is None or room_code is None or my_symbol is None
        ):
            raise ValueError("Online matches need a repository, room code and symbol")
        self.mode = mode
        self.repository = repository
        self.room_code = room_code
        self.my_symbol = my_symbol
        self.difficulty = difficulty
        self.chooser = chooser
        self.think_delay = think_delay

        self.state = MatchState()
        self.scores = Scoreboard()
        self.move_log: List[Dict[str, object]] = []
        self.ai_pending = False
        # Offline there is nobody to lose; online we wait for the first snapshot
        self.opponent_connected = mode is not GameMode.ONLINE
        self.room_status: Optional[RoomStatus] = None
        self.last_push_error: Optional[Exception] = None
        self._result_recorded = False

    # ---- moves ----

    def can_move(self, cell_index: int, mover: Optional[Player] = None) -> bool:
        state = self.state
        if not 0 <= cell_index < BOARD_SIZE or state.board[cell_index] is not None:
            return False
        if state.is_terminal:
            return False
        if self.mode is GameMode.ONLINE:
            return state.current_turn == self.my_symbol and self.opponent_connected
        if self.mode is GameMode.SINGLE:
            return state.current_turn == (mover or HUMAN_SYMBOL)
        return mover is None or mover == state.current_turn

    async def attempt_move(self, cell_index: int, mover: Optional[Player] = None) -> bool:
        if not self.can_move(cell_index, mover):
            logger.debug(
                "Rejected move at %s (turn %s, mover %s)",
                cell_index,
                self.state.current_turn,
                mover or self.my_symbol,
            )
            return False

        player = self.state.current_turn
        self.state.place(cell_index)
        self.move_log.append({"player": player, "cellIndex": cell_index})
        self._track_result()

        if self.mode is GameMode.ONLINE:
            await self._push()
        return True

    # ---- automated opponent ----

    @property
    def ai_turn_due(self) -> bool:
        return (
            self.mode is GameMode.SINGLE
            and not self.state.is_terminal
            and self.state.current_turn == AI_SYMBOL
        )

    async def run_ai_turn(self) -> bool:
        """Think for a moment, then play the AI's move through ``attempt_move``."""
        if not self.ai_turn_due:
            return False
        self.ai_pending = True
        try:
            await asyncio.sleep(max(0.0, self.think_delay))
            # A reset during the delay can take the turn away
            if not self.ai_turn_due:
                return False
            cell_index = self.chooser(list(self.state.board), self.difficulty)
            return await self.attempt_move(cell_index, mover=AI_SYMBOL)
        finally:
            self.ai_pending = False

    # ---- online ----

    def apply_view(self, view: RoomView) -> None:
        """Adopt the latest room snapshot; it overrides any optimistic move."""
        self.state.board = list(view.board)
        self.state.current_turn = view.current_turn
        self.state.winner = view.winner
        self.state.winning_line = view.winning_line
        self.opponent_connected = view.opponent_connected
        self.room_status = view.status
        if view.winner is None and not any(view.board):
            self.move_log.clear()
        self._track_result()

    async def leave(self) -> None:
        if self.mode is GameMode.ONLINE and self.repository is not None:
            await self.repository.leave_room(self.room_code, self.my_symbol == "X")

    async def _push(self) -> None:
        if self.repository is None or self.room_code is None:
            return
        state = self.state
        # A finished match still hands the turn over, like a normal move
        next_turn = other(state.current_turn) if state.is_terminal else state.current_turn
        try:
            await self.repository.update_game_state(
                self.room_code, state.board, next_turn, state.winner
            )
        except (TicTacRoomError, ConnectionError, TimeoutError) as exc:
            # Not surfaced; the next snapshot reconciles local state
            logger.warning("Failed to push state for room %s: %s", self.room_code, exc)
            self.last_push_error = exc
        else:
            self.last_push_error = None

    # ---- lifecycle ----

    async def play_again(self) -> bool:
        if self.mode is GameMode.ONLINE and self.room_status is RoomStatus.WAITING:
            return False
        self.state.reset()
        self.move_log.clear()
        self._result_recorded = False
        if self.mode is GameMode.ONLINE:
            await self._push()
        return True

    def _track_result(self) -> None:
        winner = self.state.winner
        if winner is None:
            self._result_recorded = False
        elif not self._result_recorded:
            self._result_recorded = True
            self.scores.record(winner)
