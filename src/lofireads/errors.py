"""Custom exceptions for lofireads."""


class LofiReadsError(Exception):
    """Base exception for all lofireads errors."""

    pass


class BookNotFoundError(LofiReadsError):
    """Raised when a book ID is not in the catalog."""

    def __init__(self, book_id: str):
        self.book_id = book_id
        super().__init__(f"Book not found: {book_id}")


class OrderNotFoundError(LofiReadsError):
    """Raised when an order ID doesn't exist."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class ReviewNotFoundError(LofiReadsError):
    """Raised when a review ID doesn't exist."""

    def __init__(self, review_id: str):
        self.review_id = review_id
        super().__init__(f"Review not found: {review_id}")


class EmptyCartError(LofiReadsError):
    """Raised when checking out a cart with no lines."""

    def __init__(self):
        super().__init__("Cannot check out an empty cart")


class InvalidStatusTransitionError(LofiReadsError):
    """Raised when an order status change is not allowed."""

    def __init__(self, order_id: str, current: str, requested: str):
        self.order_id = order_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Order {order_id} cannot move from '{current}' to '{requested}'"
        )


class InvalidSortOptionError(LofiReadsError):
    """Raised when a sort option name is not recognized."""

    def __init__(self, value: str, choices: list[str] | None = None):
        self.value = value
        msg = f"Invalid sort option: {value}"
        if choices:
            msg = f"{msg} (choose from {', '.join(choices)})"
        super().__init__(msg)


class AuthenticationRequiredError(LofiReadsError):
    """Raised when an operation needs a logged-in user."""

    def __init__(self):
        super().__init__("Not authenticated")
