"""Wishlist storage for lofireads."""

from __future__ import annotations

import logging

from .models import Book, WishlistEntry
from .storage import WISHLIST_KEY, KeyValueStore, parse_records

logger = logging.getLogger(__name__)


class WishlistStore:
    """
    Per-user wishlists persisted as ``{user_id: [entry, ...]}``.

    Every call reads the persisted map; mutations are locked
    read-modify-writes of the whole map. Nothing is cached in memory.
    """

    def __init__(self, kv: KeyValueStore | None = None):
        self.kv = kv or KeyValueStore()

    def _load(self) -> dict:
        return self.kv.get(WISHLIST_KEY, {})

    @staticmethod
    def _entries(data: dict, user_id: str) -> list[dict]:
        """The user's stored entries, without any that cannot be parsed."""
        entries = data.get(user_id)
        if not isinstance(entries, list):
            return []
        return [e for e in entries if parse_records(WISHLIST_KEY, [e], WishlistEntry.from_dict)]

    def list(self, user_id: str) -> list[WishlistEntry]:
        """List a user's wishlist in insertion order."""
        self.kv.delay(150)
        return [WishlistEntry.from_dict(e) for e in self._entries(self._load(), user_id)]

    def count(self, user_id: str) -> int:
        return len(self._entries(self._load(), user_id))

    def contains(self, user_id: str, book_id: str) -> bool:
        return any(e["book"]["id"] == book_id for e in self._entries(self._load(), user_id))

    def add(self, user_id: str, book: Book) -> list[WishlistEntry]:
        """Add book to the wishlist. Adding a book already present is a no-op."""
        self.kv.delay(200)
        with self.kv.transaction(WISHLIST_KEY, {}) as txn:
            entries = self._entries(txn.value, user_id)
            if not any(e["book"]["id"] == book.id for e in entries):
                entries.append(WishlistEntry(book=book).to_dict())
                logger.info("Wishlist %s: added %s", user_id, book.id)
            txn.value[user_id] = entries
        return [WishlistEntry.from_dict(e) for e in entries]

    def remove(self, user_id: str, book_id: str) -> list[WishlistEntry]:
        """Remove a book from the wishlist if present."""
        self.kv.delay(150)
        with self.kv.transaction(WISHLIST_KEY, {}) as txn:
            entries = [e for e in self._entries(txn.value, user_id) if e["book"]["id"] != book_id]
            txn.value[user_id] = entries
        return [WishlistEntry.from_dict(e) for e in entries]

    def toggle(self, user_id: str, book: Book) -> bool:
        """
        Remove book if present, add it otherwise.

        Returns:
            True if the book is in the wishlist afterwards.
        """
        with self.kv.transaction(WISHLIST_KEY, {}) as txn:
            entries = self._entries(txn.value, user_id)
            kept = [e for e in entries if e["book"]["id"] != book.id]
            if len(kept) == len(entries):
                kept.append(WishlistEntry(book=book).to_dict())
                in_wishlist = True
            else:
                in_wishlist = False
            txn.value[user_id] = kept
        logger.info("Wishlist %s: toggled %s -> %s", user_id, book.id, in_wishlist)
        return in_wishlist

    def clear(self, user_id: str) -> None:
        self.kv.delay(150)
        with self.kv.transaction(WISHLIST_KEY, {}) as txn:
            txn.value[user_id] = []

    def take_all(self, user_id: str) -> list[Book]:
        """
        Empty the wishlist and return the books it held.

        Adding the books to a cart is the caller's job.
        """
        self.kv.delay(200)
        with self.kv.transaction(WISHLIST_KEY, {}) as txn:
            entries = self._entries(txn.value, user_id)
            txn.value[user_id] = []
        return [WishlistEntry.from_dict(e).book for e in entries]
