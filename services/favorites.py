"""
Customer favorites with an explicit compensating action.

Toggling a favorite is two-phase: the change is applied tentatively to the
local store so the UI updates at once, then the backend call either
confirms it or the compensation restores the product's previous state.
Compensation only touches the product being changed, so other toggles
that completed in the meantime are preserved.
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from db import get_cursor
from services.errors import DispatchError, ValidationError
from services.storage import KeyValueStore

logger = logging.getLogger(__name__)

FAVORITES_STORAGE_KEY = "favorites"


class FavoritesBackend(ABC):
    @abstractmethod
    async def add_favorite(self, customer_id: str, product_id: str):
        pass

    @abstractmethod
    async def remove_favorite(self, customer_id: str, product_id: str):
        pass


@dataclass
class TentativeChange:
    product_id: str
    favorite: bool
    was_favorite: bool
    settled: bool = False


class Favorites:
    def __init__(self, customer_id: str, backend: FavoritesBackend, storage: KeyValueStore):
        self.customer_id = customer_id
        self.backend = backend
        self.storage = storage

    @property
    def product_ids(self) -> set[str]:
        raw = self.storage.get(FAVORITES_STORAGE_KEY)
        return set(json.loads(raw)) if raw else set()

    def is_favorite(self, product_id: str) -> bool:
        return product_id in self.product_ids

    def _write(self, ids: set[str]):
        self.storage.set(FAVORITES_STORAGE_KEY, json.dumps(sorted(ids)))

    def _set_local(self, product_id: str, favorite: bool):
        ids = self.product_ids
        if favorite:
            ids.add(product_id)
        else:
            ids.discard(product_id)
        self._write(ids)

    def apply_tentative(self, product_id: str, favorite: bool) -> TentativeChange:
        change = TentativeChange(product_id, favorite, self.is_favorite(product_id))
        self._set_local(product_id, favorite)
        return change

    def confirm(self, change: TentativeChange):
        change.settled = True

    def compensate(self, change: TentativeChange):
        """Undo a tentative change. Idempotent."""
        if change.settled:
            return
        self._set_local(change.product_id, change.was_favorite)
        change.settled = True

    async def set_favorite(self, product_id: str, favorite: bool):
        change = self.apply_tentative(product_id, favorite)
        if change.was_favorite == favorite:
            self.confirm(change)
            return
        try:
            if favorite:
                await self.backend.add_favorite(self.customer_id, product_id)
            else:
                await self.backend.remove_favorite(self.customer_id, product_id)
        except DispatchError as e:
            logger.warning(f"Favorite update for {product_id} failed, reverting: {e}")
            self.compensate(change)
            raise
        self.confirm(change)

    async def toggle(self, product_id: str) -> bool:
        target = not self.is_favorite(product_id)
        await self.set_favorite(product_id, target)
        return target


class SqliteFavoritesBackend(FavoritesBackend):
    """Server-side favorites, used by the API and in-process clients."""

    async def add_favorite(self, customer_id: str, product_id: str):
        with get_cursor() as cursor:
            cursor.execute("SELECT 1 FROM products WHERE product_id = ?", (product_id,))
            if not cursor.fetchone():
                raise ValidationError(f"Unknown product {product_id}")
            cursor.execute(
                """INSERT OR IGNORE INTO favorites (customer_id, product_id, created_at)
                   VALUES (?, ?, ?)""",
                (customer_id, product_id, datetime.now().isoformat())
            )

    async def remove_favorite(self, customer_id: str, product_id: str):
        with get_cursor() as cursor:
            cursor.execute(
                "DELETE FROM favorites WHERE customer_id = ? AND product_id = ?",
                (customer_id, product_id)
            )

    def list_favorites(self, customer_id: str) -> list[str]:
        with get_cursor() as cursor:
            cursor.execute(
                "SELECT product_id FROM favorites WHERE customer_id = ? ORDER BY created_at",
                (customer_id,)
            )
            return [row[0] for row in cursor.fetchall()]
