"""Local AI opponent: random, tactical, or full minimax depending on difficulty."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Sequence, Tuple
import math
import random

from .game import Cell, Player, available_moves, evaluate, other

Difficulty = Literal["EASY", "MEDIUM", "HARD"]
DIFFICULTIES: Tuple[Difficulty, ...] = ("EASY", "MEDIUM", "HARD")

CENTER = 4


@dataclass
class MinimaxAI:
    """AI player for a single 3x3 board.

    - EASY: uniformly random legal cell
    - MEDIUM: take a win, else block the opponent's win, else random
    - HARD: exhaustive minimax, opening in the centre when it is free
    """

    player: Player = "O"
    difficulty: Difficulty = "MEDIUM"
    rng: random.Random = field(default_factory=random.Random, repr=False)
    _tt: Dict[Tuple[Tuple[Cell, ...], bool, int], float] = field(
        default_factory=dict, repr=False
    )

    # ---- public API ----

    def choose(self, board: Sequence[Cell]) -> int:
        moves = available_moves(board)
        if not moves:
            raise RuntimeError("No valid moves available")

        if self.difficulty == "EASY":
            return self.rng.choice(moves)

        if self.difficulty == "MEDIUM":
            winning = self._completing_move(board, self.player, moves)
            if winning is not None:
                return winning
            blocking = self._completing_move(board, other(self.player), moves)
            if blocking is not None:
                return blocking
            return self.rng.choice(moves)

        # Opening shortcut saves a full search of the empty tree
        if len(moves) >= 8 and board[CENTER] is None:
            return CENTER

        best_score, best_move = -math.inf, None
        cells = list(board)
        for move in moves:
            cells[move] = self.player
            score = self._minimax(cells, 0, False)
            cells[move] = None
            if score > best_score:
                best_score, best_move = score, move
        return best_move if best_move is not None else moves[0]

    # ---- core search ----

    def _minimax(self, cells: List[Cell], depth: int, maximizing: bool) -> float:
        winner, _ = evaluate(cells)
        if winner == self.player:
            return 10 - depth
        if winner == "draw":
            return 0
        if winner is not None:
            return depth - 10

        # Scores are depth-relative, so depth is part of the key
        key = (tuple(cells), maximizing, depth)
        cached = self._tt.get(key)
        if cached is not None:
            return cached

        mover = self.player if maximizing else other(self.player)
        best = -math.inf if maximizing else math.inf
        for move in available_moves(cells):
            cells[move] = mover
            score = self._minimax(cells, depth + 1, not maximizing)
            cells[move] = None
            best = max(best, score) if maximizing else min(best, score)

        self._tt[key] = best
        return best

    # ---- heuristics ----

    @staticmethod
    def _completing_move(
        board: Sequence[Cell], player: Player, moves: Sequence[int]
    ) -> Optional[int]:
        for move in moves:
            trial = list(board)
            trial[move] = player
            if evaluate(trial)[0] == player:
                return move
        return None


def choose_move(
    board: Sequence[Cell],
    difficulty: Difficulty,
    player: Player = "O",
    rng: Optional[random.Random] = None,
) -> int:
    """Pick a cell for ``player``; the controller treats this as an external mover."""
    ai = MinimaxAI(player=player, difficulty=difficulty, rng=rng or random.Random())
    return ai.choose(board)
