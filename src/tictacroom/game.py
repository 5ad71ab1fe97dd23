"""Core rules for a single 3x3 tic-tac-toe match."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Literal, Optional, Sequence, Tuple

Player = Literal["X", "O"]
Cell = Optional[Player]  # None for an empty cell
Winner = Literal["X", "O", "draw"]
Line = Tuple[int, int, int]

BOARD_SIZE = 9

WINNING_LINES: Tuple[Line, ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)


def empty_board() -> List[Cell]:
    return [None] * BOARD_SIZE


def other(player: Player) -> Player:
    return "O" if player == "X" else "X"


def find_winning_line(board: Sequence[Cell]) -> Optional[Line]:
    """Return the first line holding three equal marks, scanning in fixed order."""
    for a, b, c in WINNING_LINES:
        v = board[a]
        if v is not None and v == board[b] == board[c]:
            return (a, b, c)
    return None


def evaluate(board: Sequence[Cell]) -> Tuple[Optional[Winner], Optional[Line]]:
    """Return ``(winner, line)`` for a board.

    ``winner`` is the symbol of the first completed line, ``"draw"`` for a
    full board without one, or ``None`` while the match is still open.
    """
    line = find_winning_line(board)
    if line is not None:
        return board[line[0]], line  # type: ignore[return-value]
    if all(c is not None for c in board):
        return "draw", None
    return None, None


def available_moves(board: Sequence[Cell]) -> List[int]:
    return [i for i, c in enumerate(board) if c is None]


class MatchStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    WON = "WON"
    DRAWN = "DRAWN"


@dataclass
class MatchState:
    """Client-local view of one match: board, mover and result."""

    board: List[Cell] = field(default_factory=empty_board)
    current_turn: Player = "X"
    winner: Optional[Winner] = None
    winning_line: Optional[Line] = None

    @property
    def status(self) -> MatchStatus:
        if self.winner == "draw":
            return MatchStatus.DRAWN
        if self.winner is not None:
            return MatchStatus.WON
        return MatchStatus.IN_PROGRESS

    @property
    def is_terminal(self) -> bool:
        return self.winner is not None

    def is_full(self) -> bool:
        return all(c is not None for c in self.board)

    def place(self, idx: int) -> None:
        """Place the current mover's mark at ``idx`` and advance the match."""
        if self.is_terminal:
            raise ValueError("Match already finished")
        if not 0 <= idx < BOARD_SIZE:
            raise ValueError("Cell index out of range")
        if self.board[idx] is not None:
            raise ValueError("Cell already occupied")
        self.board[idx] = self.current_turn
        self._update_state()

    def reset(self) -> None:
        self.board = empty_board()
        self.current_turn = "X"
        self.winner = None
        self.winning_line = None

    def clone(self) -> "MatchState":
        return MatchState(
            board=self.board.copy(),
            current_turn=self.current_turn,
            winner=self.winner,
            winning_line=self.winning_line,
        )

    # ---- helpers ----

    def _update_state(self) -> None:
        winner, line = evaluate(self.board)
        if winner is not None:
            # Terminal: the mover stays put, nobody moves next
            self.winner = winner
            self.winning_line = line
            return
        self.current_turn = other(self.current_turn)
