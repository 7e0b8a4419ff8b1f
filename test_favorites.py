import asyncio

import pytest

from services.errors import TransportError
from services.favorites import Favorites, FavoritesBackend, SqliteFavoritesBackend
from services.storage import MemoryStore


class RecordingBackend(FavoritesBackend):
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.calls = []

    async def add_favorite(self, customer_id, product_id):
        self.calls.append(("add", product_id))
        if product_id in self.fail_for:
            raise TransportError("Network error: connection reset")

    async def remove_favorite(self, customer_id, product_id):
        self.calls.append(("remove", product_id))
        if product_id in self.fail_for:
            raise TransportError("Network error: connection reset")


@pytest.fixture
def storage():
    return MemoryStore()


def test_toggle_adds_then_removes(storage):
    backend = RecordingBackend()
    favorites = Favorites("cust-1", backend, storage)
    assert asyncio.run(favorites.toggle("p-milk")) is True
    assert asyncio.run(favorites.toggle("p-milk")) is False
    assert backend.calls == [("add", "p-milk"), ("remove", "p-milk")]
    assert favorites.product_ids == set()


def test_failed_add_is_reverted(storage):
    favorites = Favorites("cust-1", RecordingBackend(fail_for={"p-eggs"}), storage)
    with pytest.raises(TransportError):
        asyncio.run(favorites.set_favorite("p-eggs", True))
    assert not favorites.is_favorite("p-eggs")


def test_failed_remove_is_reverted(storage):
    backend = RecordingBackend()
    favorites = Favorites("cust-1", backend, storage)
    asyncio.run(favorites.set_favorite("p-eggs", True))
    backend.fail_for.add("p-eggs")
    with pytest.raises(TransportError):
        asyncio.run(favorites.set_favorite("p-eggs", False))
    assert favorites.is_favorite("p-eggs")


def test_no_backend_call_when_already_in_target_state(storage):
    backend = RecordingBackend()
    favorites = Favorites("cust-1", backend, storage)
    asyncio.run(favorites.set_favorite("p-milk", False))
    assert backend.calls == []


def test_compensation_only_restores_its_own_product(storage):
    favorites = Favorites("cust-1", RecordingBackend(), storage)
    change = favorites.apply_tentative("p-milk", True)
    # Another toggle settles while the first is still in flight
    other = favorites.apply_tentative("p-eggs", True)
    favorites.confirm(other)

    favorites.compensate(change)

    assert favorites.product_ids == {"p-eggs"}


def test_compensate_is_idempotent(storage):
    favorites = Favorites("cust-1", RecordingBackend(), storage)
    change = favorites.apply_tentative("p-milk", True)
    favorites.compensate(change)
    favorites.apply_tentative("p-milk", True)
    favorites.compensate(change)
    assert favorites.is_favorite("p-milk")


def test_confirmed_change_is_not_compensated(storage):
    favorites = Favorites("cust-1", RecordingBackend(), storage)
    change = favorites.apply_tentative("p-milk", True)
    favorites.confirm(change)
    favorites.compensate(change)
    assert favorites.is_favorite("p-milk")


def test_sqlite_backend_round_trip(seeded):
    backend = SqliteFavoritesBackend()
    asyncio.run(backend.add_favorite("cust-1", "p-milk"))
    asyncio.run(backend.add_favorite("cust-1", "p-milk"))
    asyncio.run(backend.add_favorite("cust-2", "p-eggs"))
    assert backend.list_favorites("cust-1") == ["p-milk"]

    asyncio.run(backend.remove_favorite("cust-1", "p-milk"))
    assert backend.list_favorites("cust-1") == []
    assert backend.list_favorites("cust-2") == ["p-eggs"]
