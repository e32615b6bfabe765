"""Session-scoped shopping cart."""

import logging
from typing import Iterator

from .models import Book, CartLine

logger = logging.getLogger(__name__)


class Cart:
    """
    In-memory cart of (book, quantity) lines.

    Holds at most one line per book ID, in the order books were first
    added. Totals are computed from the current lines on every read.
    The cart is not persisted.
    """

    def __init__(self) -> None:
        self._lines: dict[str, CartLine] = {}

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[CartLine]:
        return iter(self.lines)

    def __contains__(self, book_id: object) -> bool:
        return book_id in self._lines

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines.values())

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    @property
    def total_price(self) -> float:
        return sum(line.book.price * line.quantity for line in self._lines.values())

    def get_line(self, book_id: str) -> CartLine | None:
        return self._lines.get(book_id)

    def add(self, book: Book) -> CartLine:
        """Add one copy of book, creating the line if needed."""
        line = self._lines.get(book.id)
        if line is None:
            line = CartLine(book=book, quantity=1)
            self._lines[book.id] = line
        else:
            line.quantity += 1
        logger.debug("Cart: %s x%d", book.id, line.quantity)
        return line

    def remove(self, book_id: str) -> None:
        self._lines.pop(book_id, None)

    def set_quantity(self, book_id: str, quantity: int) -> None:
        """Set a line's quantity. Zero or less removes it; unknown IDs are ignored."""
        if quantity <= 0:
            self.remove(book_id)
            return
        line = self._lines.get(book_id)
        if line is not None:
            line.quantity = quantity

    def clear(self) -> None:
        self._lines.clear()

    def snapshot(self) -> tuple[CartLine, ...]:
        """Copies of the current lines, detached from later cart changes."""
        return tuple(CartLine(book=line.book, quantity=line.quantity) for line in self._lines.values())
