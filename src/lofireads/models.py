"""Data models for lofireads."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any
import time
import uuid

GUEST_USER_ID = "guest"


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def _utc_in(days: int) -> str:
    """Return the UTC time `days` from now as ISO 8601 string."""
    moment = datetime.now(timezone.utc) + timedelta(days=days)
    return moment.isoformat(timespec="microseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse a stored ISO 8601 timestamp. Unparseable values sort oldest."""
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return datetime.min.replace(tzinfo=timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _generate_id() -> str:
    """Generate a new opaque ID."""
    return str(uuid.uuid4())


def _prefixed_id(prefix: str, sep: str = "_") -> str:
    """Generate `<prefix><sep><epoch millis><sep><9 random chars>`."""
    millis = int(time.time() * 1000)
    return f"{prefix}{sep}{millis}{sep}{uuid.uuid4().hex[:9]}"


def generate_order_id() -> str:
    """Generate an order ID like ``ORD-1712345678901-3FA9C02B1``."""
    return _prefixed_id("ORD", sep="-").upper()


def generate_review_id() -> str:
    return _prefixed_id("review")


def generate_user_id() -> str:
    return _prefixed_id("user")


@dataclass(frozen=True)
class Book:
    """A catalog book. Defined at load time and never mutated."""

    id: str
    title: str
    author: str
    price: float
    description: str = ""
    cover: str = ""
    genre: str = ""
    year: int = 0
    pages: int = 1
    isbn: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "price": self.price,
            "description": self.description,
            "cover": self.cover,
            "genre": self.genre,
            "year": self.year,
            "pages": self.pages,
            "isbn": self.isbn,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Book":
        return cls(
            id=str(data["id"]),
            title=data["title"],
            author=data["author"],
            price=float(data["price"]),
            description=data.get("description", ""),
            cover=data.get("cover", ""),
            genre=data.get("genre", ""),
            year=int(data.get("year", 0)),
            pages=int(data.get("pages", 1)),
            isbn=data.get("isbn", ""),
        )


@dataclass
class CartLine:
    """One (book, quantity) pair in a cart."""

    book: Book
    quantity: int = 1

    @property
    def subtotal(self) -> float:
        return self.book.price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {"book": self.book.to_dict(), "quantity": self.quantity}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartLine":
        return cls(book=Book.from_dict(data["book"]), quantity=int(data["quantity"]))


@dataclass
class WishlistEntry:
    """A saved book in a user's wishlist."""

    book: Book
    added_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {"book": self.book.to_dict(), "added_at": self.added_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WishlistEntry":
        return cls(book=Book.from_dict(data["book"]), added_at=data.get("added_at", ""))


@dataclass
class Address:
    """A postal address on a user profile or order."""

    id: str
    name: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str
    is_default: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
            "is_default": self.is_default,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Address":
        return cls(
            id=data.get("id") or _generate_id(),
            name=data.get("name", ""),
            street=data.get("street", ""),
            city=data.get("city", ""),
            state=data.get("state", ""),
            zip_code=data.get("zip_code", ""),
            country=data.get("country", ""),
            is_default=data.get("is_default", False),
        )


@dataclass
class PaymentMethod:
    """Payment method descriptor. No card data beyond the last four digits."""

    type: str  # "card" | "paypal" | "test"
    last4: str | None = None
    brand: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.type}
        if self.last4 is not None:
            result["last4"] = self.last4
        if self.brand is not None:
            result["brand"] = self.brand
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PaymentMethod":
        return cls(type=data["type"], last4=data.get("last4"), brand=data.get("brand"))


class OrderStatus(str, Enum):
    """Order lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


# Forward moves; CANCELLED is reachable from any non-terminal state.
ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


@dataclass(frozen=True)
class OrderTotals:
    """Money breakdown for a set of cart lines."""

    subtotal: float
    shipping: float
    tax: float
    total: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "shipping": self.shipping,
            "tax": self.tax,
            "total": self.total,
        }


@dataclass
class Order:
    """A checkout transaction. The items snapshot never changes after creation."""

    id: str
    user_id: str
    items: list[CartLine]
    subtotal: float
    shipping: float
    tax: float
    total: float
    shipping_address: Address
    payment_method: PaymentMethod
    status: OrderStatus = OrderStatus.PROCESSING
    billing_address: Address | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)
    tracking_number: str | None = None
    estimated_delivery: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "user_id": self.user_id,
            "items": [line.to_dict() for line in self.items],
            "subtotal": self.subtotal,
            "shipping": self.shipping,
            "tax": self.tax,
            "total": self.total,
            "shipping_address": self.shipping_address.to_dict(),
            "payment_method": self.payment_method.to_dict(),
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.billing_address is not None:
            result["billing_address"] = self.billing_address.to_dict()
        if self.tracking_number is not None:
            result["tracking_number"] = self.tracking_number
        if self.estimated_delivery is not None:
            result["estimated_delivery"] = self.estimated_delivery
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        billing = None
        if data.get("billing_address"):
            billing = Address.from_dict(data["billing_address"])
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            items=[CartLine.from_dict(i) for i in data.get("items", [])],
            subtotal=data["subtotal"],
            shipping=data["shipping"],
            tax=data["tax"],
            total=data["total"],
            shipping_address=Address.from_dict(data["shipping_address"]),
            payment_method=PaymentMethod.from_dict(data["payment_method"]),
            status=OrderStatus(data.get("status", OrderStatus.PROCESSING.value)),
            billing_address=billing,
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            tracking_number=data.get("tracking_number"),
            estimated_delivery=data.get("estimated_delivery"),
        )


@dataclass
class Review:
    """A user's review of a book."""

    id: str
    book_id: str
    user_id: str
    user_name: str
    rating: int  # 1-5
    title: str
    content: str
    helpful: int = 0
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "rating": self.rating,
            "title": self.title,
            "content": self.content,
            "helpful": self.helpful,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Review":
        return cls(
            id=data["id"],
            book_id=data["book_id"],
            user_id=data["user_id"],
            user_name=data.get("user_name", ""),
            rating=int(data["rating"]),
            title=data.get("title", ""),
            content=data.get("content", ""),
            helpful=int(data.get("helpful", 0)),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


@dataclass
class RatingStats:
    """Aggregate rating figures for one book."""

    book_id: str
    average: float
    total: int
    distribution: dict[int, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "book_id": self.book_id,
            "average": self.average,
            "total": self.total,
            "distribution": {str(k): v for k, v in self.distribution.items()},
        }


@dataclass
class User:
    """A registered shopper."""

    id: str
    email: str
    name: str
    role: str = "user"  # "user" | "admin"
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "User":
        return cls(
            id=data["id"],
            email=data["email"],
            name=data.get("name", ""),
            role=data.get("role", "user"),
            created_at=data.get("created_at", ""),
        )


@dataclass
class UserPreferences:
    newsletter: bool = False
    email_notifications: bool = True
    favorite_genres: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "newsletter": self.newsletter,
            "email_notifications": self.email_notifications,
            "favorite_genres": list(self.favorite_genres),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserPreferences":
        return cls(
            newsletter=data.get("newsletter", False),
            email_notifications=data.get("email_notifications", True),
            favorite_genres=list(data.get("favorite_genres", [])),
        )


@dataclass
class UserProfile:
    """A user together with contact details and preferences."""

    user: User
    phone: str | None = None
    addresses: list[Address] = field(default_factory=list)
    preferences: UserPreferences = field(default_factory=UserPreferences)

    def to_dict(self) -> dict[str, Any]:
        result = self.user.to_dict()
        result.update(
            {
                "phone": self.phone,
                "addresses": [a.to_dict() for a in self.addresses],
                "preferences": self.preferences.to_dict(),
            }
        )
        return result


@dataclass
class AuthResult:
    """Outcome of a registration, login or account update."""

    success: bool
    user: User | None = None
    error: str | None = None

    @classmethod
    def ok(cls, user: User | None = None) -> "AuthResult":
        return cls(success=True, user=user)

    @classmethod
    def fail(cls, error: str) -> "AuthResult":
        return cls(success=False, error=error)


@dataclass
class Session:
    """A browsing session. Per-user operations take one explicitly."""

    id: str = field(default_factory=_generate_id)
