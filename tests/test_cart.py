"""Tests for the session cart."""

import pytest

from lofireads.cart import Cart

from .conftest import make_book

BOOK_A = make_book("a", price=12.50)
BOOK_B = make_book("b", price=7.25)


def expected_total(cart):
    return sum(line.book.price * line.quantity for line in cart.lines)


class TestCart:
    def test_new_cart_is_empty(self):
        cart = Cart()
        assert cart.is_empty
        assert cart.total_items == 0
        assert cart.total_price == 0

    def test_distinct_books_make_distinct_lines(self):
        cart = Cart()
        cart.add(BOOK_A)
        cart.add(BOOK_B)

        assert [(l.book.id, l.quantity) for l in cart.lines] == [("a", 1), ("b", 1)]

    def test_same_book_increments_quantity(self):
        cart = Cart()
        cart.add(BOOK_A)
        cart.add(BOOK_A)

        assert len(cart) == 1
        assert cart.get_line("a").quantity == 2
        assert cart.total_items == 2

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_removes_line(self, quantity):
        cart = Cart()
        cart.add(BOOK_A)
        cart.add(BOOK_B)

        cart.set_quantity("a", quantity)

        assert "a" not in cart
        assert len(cart) == 1

    def test_set_quantity(self):
        cart = Cart()
        cart.add(BOOK_A)

        cart.set_quantity("a", 5)

        assert cart.get_line("a").quantity == 5
        assert cart.total_price == pytest.approx(62.50)

    def test_set_quantity_unknown_book_is_noop(self):
        cart = Cart()
        cart.set_quantity("missing", 3)
        assert cart.is_empty

    def test_remove(self):
        cart = Cart()
        cart.add(BOOK_A)
        cart.remove("a")
        cart.remove("a")
        assert cart.is_empty

    def test_clear(self):
        cart = Cart()
        cart.add(BOOK_A)
        cart.add(BOOK_B)
        cart.clear()
        assert cart.is_empty
        assert cart.total_price == 0

    def test_no_upper_bound_on_quantity(self):
        cart = Cart()
        for _ in range(250):
            cart.add(BOOK_B)
        assert cart.total_items == 250

    def test_totals_track_every_mutation(self):
        cart = Cart()
        steps = [
            lambda: cart.add(BOOK_A),
            lambda: cart.add(BOOK_B),
            lambda: cart.add(BOOK_A),
            lambda: cart.set_quantity("b", 4),
            lambda: cart.remove("a"),
            lambda: cart.add(BOOK_A),
            lambda: cart.set_quantity("b", 0),
            lambda: cart.clear(),
            lambda: cart.add(BOOK_B),
        ]
        for step in steps:
            step()
            assert cart.total_price == pytest.approx(expected_total(cart))
            assert cart.total_items == sum(l.quantity for l in cart.lines)

    def test_snapshot_is_detached(self):
        cart = Cart()
        cart.add(BOOK_A)

        snapshot = cart.snapshot()
        cart.add(BOOK_A)
        cart.clear()

        assert len(snapshot) == 1
        assert snapshot[0].quantity == 1

    def test_lines_is_a_copy(self):
        cart = Cart()
        cart.add(BOOK_A)
        cart.lines.clear()
        assert len(cart) == 1
