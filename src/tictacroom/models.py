"""pydantic models for the shared Room document stored at ``rooms/{code}``."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .game import BOARD_SIZE, Cell, Player, Winner, empty_board


class RoomStatus(str, Enum):
    WAITING = "WAITING"
    PLAYING = "PLAYING"
    FINISHED = "FINISHED"


class PlayerSlot(BaseModel):
    """One of the two seats in a room."""

    name: str = ""
    symbol: Player
    joined: bool = False


class RoomPlayers(BaseModel):
    player1: PlayerSlot = Field(default_factory=lambda: PlayerSlot(symbol="X"))
    player2: PlayerSlot = Field(default_factory=lambda: PlayerSlot(symbol="O"))

    def slot_for(self, symbol: Player) -> PlayerSlot:
        return self.player1 if symbol == "X" else self.player2

    def opponent_of(self, symbol: Player) -> PlayerSlot:
        return self.player2 if symbol == "X" else self.player1

    @field_validator("player1")
    @classmethod
    def player1_plays_x(cls, value: PlayerSlot) -> PlayerSlot:
        if value.symbol != "X":
            raise ValueError("player1 always plays X")
        return value

    @field_validator("player2")
    @classmethod
    def player2_plays_o(cls, value: PlayerSlot) -> PlayerSlot:
        if value.symbol != "O":
            raise ValueError("player2 always plays O")
        return value


class RoomDocument(BaseModel):
    """Full snapshot of one online match as stored and delivered to subscribers."""

    model_config = ConfigDict(populate_by_name=True)

    status: RoomStatus = RoomStatus.WAITING
    players: RoomPlayers = Field(default_factory=RoomPlayers)
    board: List[Cell] = Field(default_factory=empty_board)
    current_turn: Player = Field(default="X", alias="currentTurn")
    winner: Optional[Winner] = None
    last_move_timestamp: int = Field(default=0, alias="lastMoveTimestamp")

    @field_validator("board", mode="before")
    @classmethod
    def normalize_board(cls, value: Any) -> Any:
        # The store may drop trailing nulls or hand back an index-keyed mapping
        if value is None:
            return empty_board()
        if isinstance(value, dict):
            cells = empty_board()
            for key, cell in value.items():
                cells[int(key)] = cell
            return cells
        if isinstance(value, (list, tuple)) and len(value) < BOARD_SIZE:
            return list(value) + [None] * (BOARD_SIZE - len(value))
        return value

    @field_validator("board")
    @classmethod
    def ensure_board_size(cls, value: List[Cell]) -> List[Cell]:
        if len(value) != BOARD_SIZE:
            raise ValueError(f"Board must have exactly {BOARD_SIZE} cells")
        return value

    @classmethod
    def new(cls, host_name: str, timestamp: int) -> "RoomDocument":
        return cls(
            status=RoomStatus.WAITING,
            players=RoomPlayers(
                player1=PlayerSlot(name=host_name, symbol="X", joined=True),
                player2=PlayerSlot(name="", symbol="O", joined=False),
            ),
            board=empty_board(),
            current_turn="X",
            winner=None,
            last_move_timestamp=timestamp,
        )

    def to_document(self) -> Dict[str, Any]:
        """Return the camelCase mapping written to the store."""
        return self.model_dump(mode="json", by_alias=True)
