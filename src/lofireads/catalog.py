"""
Read-only book catalog.

The catalog is loaded once from the packaged ``data/books.json`` dataset
(or from an explicit list of books) and never changes afterwards. All
operations are pure queries: filtering, sorting, lookup, facets used to
seed filter controls, and same-genre recommendations.
"""

from __future__ import annotations

import json
import locale
import logging
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional

from .errors import InvalidSortOptionError
from .models import Book

logger = logging.getLogger(__name__)

DATA_FILE = Path(__file__).resolve().parent / "data" / "books.json"


class SortOption(str, Enum):
    TITLE_ASC = "title-asc"
    TITLE_DESC = "title-desc"
    AUTHOR_ASC = "author-asc"
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"
    YEAR_DESC = "year-desc"
    RATING_DESC = "rating-desc"

    @classmethod
    def parse(cls, value: "str | SortOption") -> "SortOption":
        """Parse a sort option name such as ``"price-desc"``.

        Raises:
            InvalidSortOptionError: If the name is not a known option.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidSortOptionError(str(value), [o.value for o in cls])


@dataclass
class BookFilters:
    """Conjunctive catalog filters. ``None`` or empty means no restriction."""

    genres: list[str] = field(default_factory=list)
    authors: list[str] = field(default_factory=list)
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_year: Optional[int] = None
    max_year: Optional[int] = None
    query: Optional[str] = None

    def matches(self, book: Book) -> bool:
        if self.genres and book.genre not in self.genres:
            return False
        if self.authors and book.author not in self.authors:
            return False
        if self.min_price is not None and book.price < self.min_price:
            return False
        if self.max_price is not None and book.price > self.max_price:
            return False
        if self.min_year is not None and book.year < self.min_year:
            return False
        if self.max_year is not None and book.year > self.max_year:
            return False
        if self.query:
            q = self.query.lower()
            return (
                q in book.title.lower()
                or q in book.author.lower()
                or q in book.description.lower()
                or q in book.genre.lower()
            )
        return True


@dataclass(frozen=True)
class Range:
    min: float
    max: float

    def to_dict(self) -> dict[str, float]:
        return {"min": self.min, "max": self.max}


def _collate(text: str) -> str:
    """Locale-aware sort key that ignores case and accents."""
    decomposed = unicodedata.normalize("NFKD", text)
    base = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return locale.strxfrm(base.casefold())


def sort_books(
    books: Iterable[Book],
    sort: "str | SortOption",
    rating_for: Optional[Callable[[str], float]] = None,
) -> list[Book]:
    """
    Return books sorted by the given option.

    Sorting is stable, so books that compare equal keep their incoming
    order. ``rating-desc`` needs a `rating_for` lookup (book id -> average
    rating); without one the incoming order is kept.
    """
    option = SortOption.parse(sort)
    items = list(books)

    if option is SortOption.TITLE_ASC:
        items.sort(key=lambda b: _collate(b.title))
    elif option is SortOption.TITLE_DESC:
        items.sort(key=lambda b: _collate(b.title), reverse=True)
    elif option is SortOption.AUTHOR_ASC:
        items.sort(key=lambda b: _collate(b.author))
    elif option is SortOption.PRICE_ASC:
        items.sort(key=lambda b: b.price)
    elif option is SortOption.PRICE_DESC:
        items.sort(key=lambda b: b.price, reverse=True)
    elif option is SortOption.YEAR_DESC:
        items.sort(key=lambda b: b.year, reverse=True)
    elif option is SortOption.RATING_DESC and rating_for is not None:
        items.sort(key=lambda b: rating_for(b.id), reverse=True)

    return items


def load_books(path: Path = DATA_FILE) -> list[Book]:
    """Load the catalog dataset from a JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    return [Book.from_dict(entry) for entry in raw]


class Catalog:
    """The fixed set of purchasable books."""

    def __init__(self, books: Optional[Iterable[Book]] = None):
        """
        Initialize Catalog.

        Args:
            books: Books to serve, in catalog order. Defaults to the
                packaged dataset.
        """
        self._books: tuple[Book, ...] = tuple(load_books() if books is None else books)
        self._by_id = {b.id: b for b in self._books}
        # Facets describe the full catalog, never a filtered view
        self._price_range = self._range([b.price for b in self._books])
        self._year_range = self._range([b.year for b in self._books])
        logger.debug("Catalog loaded with %d books", len(self._books))

    @staticmethod
    def _range(values: list) -> Range:
        if not values:
            return Range(0, 0)
        return Range(min(values), max(values))

    def __len__(self) -> int:
        return len(self._books)

    @property
    def books(self) -> tuple[Book, ...]:
        return self._books

    def list_books(
        self,
        filters: Optional[BookFilters] = None,
        sort: "str | SortOption | None" = None,
        rating_for: Optional[Callable[[str], float]] = None,
    ) -> list[Book]:
        """List books matching all filters, optionally sorted."""
        results = [b for b in self._books if filters is None or filters.matches(b)]
        if sort:
            results = sort_books(results, sort, rating_for=rating_for)
        return results

    def search(self, query: str) -> list[Book]:
        return self.list_books(BookFilters(query=query))

    def get_book(self, book_id: str) -> Optional[Book]:
        return self._by_id.get(book_id)

    def genres(self) -> list[str]:
        """Distinct genres present in the catalog, sorted."""
        return sorted({b.genre for b in self._books})

    def authors(self) -> list[str]:
        """Distinct authors present in the catalog, sorted."""
        return sorted({b.author for b in self._books})

    def price_range(self) -> Range:
        return self._price_range

    def year_range(self) -> Range:
        return self._year_range

    def recommend(self, book_id: str, limit: int = 4) -> list[Book]:
        """
        Recommend books related to `book_id`.

        Same-genre books come first, in catalog order. If there are fewer
        than `limit`, other catalog books are appended in catalog order.
        The source book is never included. Unknown IDs yield an empty list.
        """
        source = self.get_book(book_id)
        if source is None or limit <= 0:
            return []

        picks = [b for b in self._books if b.genre == source.genre and b.id != book_id][:limit]
        if len(picks) < limit:
            chosen = {b.id for b in picks}
            for b in self._books:
                if len(picks) >= limit:
                    break
                if b.id != book_id and b.id not in chosen:
                    picks.append(b)
        return picks
