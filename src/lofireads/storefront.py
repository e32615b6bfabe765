"""Per-session coordination of catalog, cart and the persisted stores."""

from __future__ import annotations

import logging

from .cart import Cart
from .catalog import Catalog
from .errors import BookNotFoundError, EmptyCartError
from .models import GUEST_USER_ID, Address, Book, Order, OrderTotals, PaymentMethod, Session, User
from .order_store import OrderStore, calculate_totals
from .review_store import ReviewStore
from .storage import KeyValueStore
from .user_store import UserStore
from .wishlist_store import WishlistStore

logger = logging.getLogger(__name__)


class Storefront:
    """
    One shopper's view of the shop.

    Owns the session's in-memory cart and runs the operations that span
    several components, such as moving the wishlist into the cart or
    turning the cart into an order. The stores themselves never call
    each other.
    """

    def __init__(
        self,
        catalog: Catalog,
        kv: KeyValueStore | None = None,
        session: Session | None = None,
        enforce_order_transitions: bool = False,
    ):
        kv = kv or KeyValueStore()
        self.catalog = catalog
        self.session = session or Session()
        self.cart = Cart()
        self.wishlist = WishlistStore(kv)
        self.orders = OrderStore(kv, enforce_transitions=enforce_order_transitions)
        self.reviews = ReviewStore(kv)
        self.users = UserStore(kv)

    @property
    def current_user(self) -> User | None:
        return self.users.current_user(self.session)

    @property
    def user_id(self) -> str:
        """The logged-in user's ID, or the guest ID."""
        user = self.current_user
        return user.id if user is not None else GUEST_USER_ID

    def require_book(self, book_id: str) -> Book:
        book = self.catalog.get_book(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        return book

    def add_to_cart(self, book_id: str) -> None:
        self.cart.add(self.require_book(book_id))

    def move_wishlist_to_cart(self) -> list[Book]:
        """Add every wishlist book to the cart and empty the wishlist."""
        books = self.wishlist.take_all(self.user_id)
        for book in books:
            self.cart.add(book)
        logger.info("Moved %d wishlist book(s) to cart for %s", len(books), self.user_id)
        return books

    def checkout_preview(self) -> OrderTotals:
        return calculate_totals(self.cart.lines)

    def checkout(
        self,
        shipping_address: Address,
        payment_method: PaymentMethod,
        billing_address: Address | None = None,
    ) -> Order:
        """
        Create an order from the cart and empty the cart.

        Raises:
            EmptyCartError: If the cart has no lines.
        """
        if self.cart.is_empty:
            raise EmptyCartError()

        order = self.orders.create(
            user_id=self.user_id,
            lines=self.cart.snapshot(),
            shipping_address=shipping_address,
            payment_method=payment_method,
            billing_address=billing_address,
        )
        self.cart.clear()
        return order
