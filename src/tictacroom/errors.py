"""Error taxonomy for room synchronization."""

from __future__ import annotations


class TicTacRoomError(Exception):
    """Base exception carrying a stable machine-readable code."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(f"[{self.code}] {self.message}")


class StorageUnavailable(TicTacRoomError):
    """The shared document store is not initialized or has disconnected."""

    code = "STORAGE_UNAVAILABLE"


class InvalidCode(TicTacRoomError):
    """Room code has the wrong length or uses characters outside the alphabet."""

    code = "INVALID_CODE"


class RoomNotFound(TicTacRoomError):
    """No room exists under this code."""

    code = "ROOM_NOT_FOUND"


class RoomFull(TicTacRoomError):
    """The room's second slot is already taken."""

    code = "ROOM_FULL"


class RoomAllocationError(TicTacRoomError):
    """Could not find a free room code."""

    code = "ROOM_ALLOCATION_FAILED"
