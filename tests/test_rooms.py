"""Tests for the room repository against the in-memory store."""

import asyncio
import itertools
import random

import pytest

from tictacroom.errors import InvalidCode, StorageUnavailable
from tictacroom.models import RoomStatus
from tictacroom.rooms import ROOM_CODE_ALPHABET, RoomRepository
from tictacroom.store import DocumentStore, StoreClient


def _repo(store, seed=None, name="client"):
    return RoomRepository(StoreClient(store, name=name), rng=random.Random(seed))


def test_alphabet_excludes_confusable_characters():
    assert len(ROOM_CODE_ALPHABET) == 32
    assert len(set(ROOM_CODE_ALPHABET)) == 32
    assert not set("01OI") & set(ROOM_CODE_ALPHABET)


def test_generated_codes_have_expected_shape():
    repo = _repo(DocumentStore(), seed=42)
    for _ in range(500):
        code = repo.generate_code()
        assert len(code) == 4
        assert all(ch in ROOM_CODE_ALPHABET for ch in code)


def test_create_room_writes_waiting_document():
    store = DocumentStore()
    repo = _repo(store)

    code = asyncio.run(repo.create_room("Alice"))
    room = asyncio.run(repo.get_room(code))

    assert room.status is RoomStatus.WAITING
    assert room.players.player1.name == "Alice"
    assert room.players.player1.symbol == "X"
    assert room.players.player1.joined is True
    assert room.players.player2.joined is False
    assert room.board == [None] * 9
    assert room.current_turn == "X"
    assert room.winner is None


def test_create_room_draws_again_when_code_is_taken():
    store = DocumentStore()
    first = asyncio.run(_repo(store, seed=5).create_room("Alice"))
    second = asyncio.run(_repo(store, seed=5).create_room("Bob"))

    assert second != first
    assert asyncio.run(_repo(store).get_room(first)).players.player1.name == "Alice"


def test_create_room_requires_store():
    repo = RoomRepository(StoreClient.unavailable())
    with pytest.raises(StorageUnavailable):
        asyncio.run(repo.create_room("Alice"))


def test_join_room_seats_guest_and_starts_play():
    store = DocumentStore()
    code = asyncio.run(_repo(store).create_room("Alice"))

    assert asyncio.run(_repo(store).join_room(code, "Bob")) is True

    room = asyncio.run(_repo(store).get_room(code))
    assert room.status is RoomStatus.PLAYING
    assert room.players.player2.name == "Bob"
    assert room.players.player2.symbol == "O"
    assert room.players.player2.joined is True


def test_join_accepts_lowercase_code():
    store = DocumentStore()
    code = asyncio.run(_repo(store).create_room("Alice"))
    assert asyncio.run(_repo(store).join_room(f" {code.lower()} ", "Bob")) is True


def test_join_rejects_missing_room():
    repo = _repo(DocumentStore())
    assert asyncio.run(repo.join_room("ZZZZ", "Bob")) is False


def test_join_rejects_half_written_room():
    store = DocumentStore()
    repo = _repo(store)
    asyncio.run(repo.leave_room("ABCD", is_player1=True))
    assert store.get("rooms/ABCD") == {"players": {"player1": {"joined": False}}}

    assert asyncio.run(repo.join_room("ABCD", "Bob")) is False
    assert store.get("rooms/ABCD") == {"players": {"player1": {"joined": False}}}


def test_join_rejects_full_room_without_touching_player1():
    store = DocumentStore()
    code = asyncio.run(_repo(store).create_room("Alice"))
    asyncio.run(_repo(store).join_room(code, "Bob"))
    before = store.get(f"rooms/{code}")

    assert asyncio.run(_repo(store).join_room(code, "Carol")) is False

    after = store.get(f"rooms/{code}")
    assert after == before
    assert after["players"]["player1"] == {"name": "Alice", "symbol": "X", "joined": True}
    assert after["players"]["player2"]["name"] == "Bob"


@pytest.mark.parametrize("code", ["", "ABC", "ABCDE", "AB0C", "ABIO"])
def test_join_validates_code_before_touching_store(code):
    repo = RoomRepository(StoreClient.unavailable())
    with pytest.raises(InvalidCode):
        asyncio.run(repo.join_room(code, "Bob"))


def test_join_requires_store():
    repo = RoomRepository(StoreClient.unavailable())
    with pytest.raises(StorageUnavailable):
        asyncio.run(repo.join_room("ABCD", "Bob"))


def test_leave_room_flags_only_that_player():
    store = DocumentStore()
    host = _repo(store)
    code = asyncio.run(host.create_room("Alice"))
    asyncio.run(_repo(store).join_room(code, "Bob"))

    asyncio.run(host.leave_room(code, is_player1=True))
    asyncio.run(host.leave_room(code, is_player1=True))

    room = asyncio.run(host.get_room(code))
    assert room.players.player1.joined is False
    assert room.players.player1.name == "Alice"
    assert room.players.player2.joined is True
    assert room.players.player2.name == "Bob"


def test_leave_room_without_store_is_silent():
    repo = RoomRepository(StoreClient.unavailable())
    assert asyncio.run(repo.leave_room("ABCD", is_player1=False)) is None


def test_dropped_connection_marks_player_gone():
    store = DocumentStore()
    host_client = StoreClient(store, name="host")
    guest_client = StoreClient(store, name="guest")
    code = asyncio.run(RoomRepository(host_client).create_room("Alice"))
    asyncio.run(RoomRepository(guest_client).join_room(code, "Bob"))

    guest_client.disconnect()

    room = asyncio.run(RoomRepository(host_client).get_room(code))
    assert room.players.player2.joined is False
    assert room.players.player1.joined is True


def test_winner_finishes_the_room():
    store = DocumentStore()
    repo = _repo(store)
    code = asyncio.run(repo.create_room("Alice"))
    asyncio.run(_repo(store).join_room(code, "Bob"))
    board = ["X", "X", "X", "O", "O", None, None, None, None]

    asyncio.run(repo.update_game_state(code, board, "X", "X"))

    room = asyncio.run(repo.get_room(code))
    assert room.board == board
    assert room.winner == "X"
    assert room.status is RoomStatus.FINISHED


def test_reset_push_reopens_finished_room():
    store = DocumentStore()
    repo = _repo(store)
    code = asyncio.run(repo.create_room("Alice"))
    asyncio.run(_repo(store).join_room(code, "Bob"))
    asyncio.run(repo.update_game_state(code, ["X"] * 3 + ["O"] * 2 + [None] * 4, "X", "X"))

    asyncio.run(repo.update_game_state(code, [None] * 9, "X", None))

    room = asyncio.run(repo.get_room(code))
    assert room.winner is None
    assert room.status is RoomStatus.PLAYING
    assert room.board == [None] * 9


def test_timestamps_never_go_backwards():
    ticks = itertools.chain([1_000, 5_000, 2_000], itertools.repeat(3_000))
    repo = RoomRepository(StoreClient(DocumentStore()), clock=lambda: next(ticks))
    code = asyncio.run(repo.create_room("Alice"))

    asyncio.run(repo.update_game_state(code, ["X"] + [None] * 8, "O", None))
    asyncio.run(repo.update_game_state(code, ["X", "O"] + [None] * 7, "X", None))

    room = asyncio.run(repo.get_room(code))
    assert room.last_move_timestamp == 5_000


def test_subscription_delivers_full_documents():
    store = DocumentStore()
    repo = _repo(store)
    code = asyncio.run(repo.create_room("Alice"))
    rooms = []

    unsubscribe = repo.subscribe_to_room(code, rooms.append)
    asyncio.run(_repo(store).join_room(code, "Bob"))
    unsubscribe()
    asyncio.run(repo.update_game_state(code, ["X"] + [None] * 8, "O", None))

    assert [room.status for room in rooms] == [RoomStatus.WAITING, RoomStatus.PLAYING]
    assert rooms[-1].players.player2.name == "Bob"


def test_subscription_skips_missing_room():
    rooms = []
    _repo(DocumentStore()).subscribe_to_room("ZZZZ", rooms.append)
    assert rooms == []


def test_subscribe_without_store_returns_inert_unsubscribe():
    repo = RoomRepository(StoreClient.unavailable())
    unsubscribe = repo.subscribe_to_room("ABCD", lambda room: None)
    unsubscribe()
    unsubscribe()


def test_visitor_counter_increments():
    repo = _repo(DocumentStore())
    assert asyncio.run(repo.get_visitor_count()) == 0
    assert asyncio.run(repo.increment_visitor_count()) == 1
    assert asyncio.run(repo.increment_visitor_count()) == 2
    assert asyncio.run(repo.get_visitor_count()) == 2
