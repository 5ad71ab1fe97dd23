"""TicTacRoom package exposing match rules, room synchronization, and the web application."""

from .ai import MinimaxAI, choose_move
from .game import MatchState
from .match import GameMode, MatchController
from .rooms import RoomRepository
from .server import app
from .store import DocumentStore, StoreClient
from .sync import RoomSynchronizer

__all__ = [
    "DocumentStore",
    "GameMode",
    "MatchController",
    "MatchState",
    "MinimaxAI",
    "RoomRepository",
    "RoomSynchronizer",
    "StoreClient",
    "app",
    "choose_move",
]
