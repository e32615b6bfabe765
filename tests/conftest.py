"""Pytest fixtures for lofireads tests."""

import tempfile
from pathlib import Path

import pytest

from lofireads.catalog import Catalog
from lofireads.models import Address, Book, PaymentMethod, Session
from lofireads.storage import KeyValueStore


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def kv(temp_dir):
    """Key-value store rooted in a temporary data directory, without simulated latency."""
    return KeyValueStore(temp_dir / "data", latency_scale=0)


@pytest.fixture
def catalog():
    """The packaged catalog dataset."""
    return Catalog()


@pytest.fixture
def session():
    return Session()


@pytest.fixture
def address():
    return Address(
        id="addr-1",
        name="Maya Reader",
        street="12 Harbour Lane",
        city="Portland",
        state="ME",
        zip_code="04101",
        country="US",
        is_default=True,
    )


@pytest.fixture
def payment():
    return PaymentMethod(type="card", last4="4242", brand="visa")


def make_book(
    book_id: str,
    title: str = "Untitled",
    price: float = 10.0,
    genre: str = "Fiction",
    author: str = "Anon",
    year: int = 2020,
) -> Book:
    """Build a catalog book with sensible defaults."""
    return Book(
        id=book_id,
        title=title,
        author=author,
        price=price,
        description=f"About {title}",
        cover="",
        genre=genre,
        year=year,
        pages=200,
        isbn=f"978-0-000000-{book_id}",
    )
