"""FastAPI REST API for the lofireads storefront."""

import logging
import threading
from collections import OrderedDict
from typing import Optional

from fastapi import FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .catalog import BookFilters, Catalog, SortOption
from .errors import (
    AuthenticationRequiredError,
    BookNotFoundError,
    EmptyCartError,
    InvalidSortOptionError,
    InvalidStatusTransitionError,
    LofiReadsError,
    OrderNotFoundError,
    ReviewNotFoundError,
)
from .models import (
    Address,
    AuthResult,
    Book,
    CartLine,
    Order,
    OrderStatus,
    PaymentMethod,
    Review,
    Session,
    WishlistEntry,
)
from .review_store import ReviewStore
from .storage import KeyValueStore
from .storefront import Storefront
from .user_store import is_admin

logger = logging.getLogger(__name__)


# --- Pydantic Schemas ---


class BookSchema(BaseModel):
    id: str
    title: str
    author: str
    price: float
    description: str
    cover: str
    genre: str
    year: int
    pages: int
    isbn: str


class BookListResponse(BaseModel):
    books: list[BookSchema]
    count: int


class RangeSchema(BaseModel):
    min: float
    max: float


class FacetsResponse(BaseModel):
    genres: list[str]
    authors: list[str]
    price_range: RangeSchema
    year_range: RangeSchema


class CartLineSchema(BaseModel):
    book: BookSchema
    quantity: int
    subtotal: float


class CartResponse(BaseModel):
    items: list[CartLineSchema]
    total_items: int
    total_price: float
    shipping: float
    tax: float
    total: float


class CartAddRequest(BaseModel):
    book_id: str


class CartQuantityRequest(BaseModel):
    quantity: int


class WishlistEntrySchema(BaseModel):
    book: BookSchema
    added_at: str


class WishlistResponse(BaseModel):
    items: list[WishlistEntrySchema]
    count: int


class WishlistToggleResponse(BaseModel):
    in_wishlist: bool
    count: int


class AddressSchema(BaseModel):
    id: Optional[str] = None
    name: str
    street: str
    city: str
    state: str = ""
    zip_code: str
    country: str
    is_default: bool = False


class PaymentMethodSchema(BaseModel):
    type: str = Field(..., pattern="^(card|paypal|test)$")
    last4: Optional[str] = Field(None, pattern="^[0-9]{4}$")
    brand: Optional[str] = None


class CheckoutRequest(BaseModel):
    shipping_address: AddressSchema
    billing_address: Optional[AddressSchema] = None
    payment_method: PaymentMethodSchema


class OrderSchema(BaseModel):
    id: str
    user_id: str
    items: list[CartLineSchema]
    subtotal: float
    shipping: float
    tax: float
    total: float
    shipping_address: AddressSchema
    billing_address: Optional[AddressSchema] = None
    payment_method: PaymentMethodSchema
    status: OrderStatus
    created_at: str
    updated_at: str
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[str] = None


class OrderListResponse(BaseModel):
    orders: list[OrderSchema]
    count: int


class OrderStatusRequest(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = None


class ReviewSchema(BaseModel):
    id: str
    book_id: str
    user_id: str
    user_name: str
    rating: int
    title: str
    content: str
    helpful: int
    created_at: str
    updated_at: str


class ReviewListResponse(BaseModel):
    reviews: list[ReviewSchema]
    count: int


class ReviewCreateRequest(BaseModel):
    # Out-of-range ratings are clamped, not rejected
    rating: int
    title: str = ""
    content: str = ""


class ReviewUpdateRequest(BaseModel):
    rating: Optional[int] = None
    title: Optional[str] = None
    content: Optional[str] = None


class RatingStatsResponse(BaseModel):
    book_id: str
    average: float
    total: int
    distribution: dict[str, int]


class UserSchema(BaseModel):
    id: str
    email: str
    name: str
    role: str
    created_at: str


class RegisterRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=1)
    name: str


class LoginRequest(BaseModel):
    email: str
    password: str


class AuthResponse(BaseModel):
    success: bool
    user: Optional[UserSchema] = None
    error: Optional[str] = None


# --- Session state ---

DEFAULT_SESSION_ID = "default"

# Storefronts kept in memory; the least recently used session is evicted first
MAX_SESSIONS = 1000

_catalog: Optional[Catalog] = None
# One storefront (and so one cart) per session ID, most recently used last
_storefronts: "OrderedDict[str, Storefront]" = OrderedDict()
_storefronts_lock = threading.Lock()


def get_catalog() -> Catalog:
    """Get the process-wide catalog, loading it on first use."""
    global _catalog
    if _catalog is None:
        _catalog = Catalog()
    return _catalog


def get_storefront(session_id: Optional[str]) -> Storefront:
    """Get the storefront for a session, creating it on first use."""
    session_id = session_id or DEFAULT_SESSION_ID
    with _storefronts_lock:
        storefront = _storefronts.get(session_id)
        if storefront is None:
            storefront = Storefront(get_catalog(), KeyValueStore(), Session(id=session_id))
            _storefronts[session_id] = storefront
            while len(_storefronts) > MAX_SESSIONS:
                evicted, _ = _storefronts.popitem(last=False)
                logger.info("Evicted idle session %s", evicted)
        else:
            _storefronts.move_to_end(session_id)
        return storefront


def reset_sessions() -> None:
    """Forget all sessions and the loaded catalog."""
    global _catalog
    _catalog = None
    with _storefronts_lock:
        _storefronts.clear()


# --- Converters ---


def book_to_schema(book: Book) -> BookSchema:
    return BookSchema(**book.to_dict())


def line_to_schema(line: CartLine) -> CartLineSchema:
    return CartLineSchema(
        book=book_to_schema(line.book), quantity=line.quantity, subtotal=line.subtotal
    )


def entry_to_schema(entry: WishlistEntry) -> WishlistEntrySchema:
    return WishlistEntrySchema(book=book_to_schema(entry.book), added_at=entry.added_at)


def order_to_schema(order: Order) -> OrderSchema:
    return OrderSchema(
        id=order.id,
        user_id=order.user_id,
        items=[line_to_schema(line) for line in order.items],
        subtotal=order.subtotal,
        shipping=order.shipping,
        tax=order.tax,
        total=order.total,
        shipping_address=AddressSchema(**order.shipping_address.to_dict()),
        billing_address=(
            AddressSchema(**order.billing_address.to_dict()) if order.billing_address else None
        ),
        payment_method=PaymentMethodSchema(**order.payment_method.to_dict()),
        status=order.status,
        created_at=order.created_at,
        updated_at=order.updated_at,
        tracking_number=order.tracking_number,
        estimated_delivery=order.estimated_delivery,
    )


def review_to_schema(review: Review) -> ReviewSchema:
    return ReviewSchema(**review.to_dict())


def auth_to_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(
        success=result.success,
        user=UserSchema(**result.user.to_dict()) if result.user else None,
        error=result.error,
    )


def address_from_schema(schema: AddressSchema) -> Address:
    return Address.from_dict(schema.model_dump())


def cart_response(storefront: Storefront) -> CartResponse:
    cart = storefront.cart
    totals = storefront.checkout_preview()
    return CartResponse(
        items=[line_to_schema(line) for line in cart.lines],
        total_items=cart.total_items,
        total_price=cart.total_price,
        shipping=totals.shipping,
        tax=totals.tax,
        total=totals.total,
    )


def wishlist_response(storefront: Storefront) -> WishlistResponse:
    entries = storefront.wishlist.list(storefront.user_id)
    return WishlistResponse(items=[entry_to_schema(e) for e in entries], count=len(entries))


# --- FastAPI App ---


app = FastAPI(
    title="lofireads API",
    description="REST API for the Lofi Reads bookshop catalog, cart, wishlist and orders",
    version=__version__,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:8080",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:8080",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Global Exception Handler ---


# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    BookNotFoundError: 404,
    OrderNotFoundError: 404,
    ReviewNotFoundError: 404,
    EmptyCartError: 409,
    InvalidStatusTransitionError: 409,
    InvalidSortOptionError: 400,
    AuthenticationRequiredError: 401,
}


@app.exception_handler(LofiReadsError)
async def lofireads_error_handler(request: Request, exc: LofiReadsError) -> JSONResponse:
    """Map LofiReadsError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


# --- Endpoints ---


@app.get("/api/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "book_count": len(get_catalog())}


# --- Catalog Endpoints ---


@app.get("/api/books", response_model=BookListResponse)
def list_books(
    genre: list[str] = Query(default=[]),
    author: list[str] = Query(default=[]),
    min_price: Optional[float] = Query(default=None, ge=0),
    max_price: Optional[float] = Query(default=None, ge=0),
    min_year: Optional[int] = None,
    max_year: Optional[int] = None,
    q: Optional[str] = None,
    sort: Optional[str] = None,
):
    """List catalog books. All filters combine with AND."""
    filters = BookFilters(
        genres=genre,
        authors=author,
        min_price=min_price,
        max_price=max_price,
        min_year=min_year,
        max_year=max_year,
        query=q,
    )
    rating_for = None
    if sort and SortOption.parse(sort) is SortOption.RATING_DESC:
        averages = ReviewStore(KeyValueStore()).average_ratings()

        def rating_for(book_id: str) -> float:
            return averages.get(book_id, 0.0)

    books = get_catalog().list_books(filters, sort=sort, rating_for=rating_for)
    return BookListResponse(books=[book_to_schema(b) for b in books], count=len(books))


@app.get("/api/books/facets", response_model=FacetsResponse)
def book_facets():
    catalog = get_catalog()
    return FacetsResponse(
        genres=catalog.genres(),
        authors=catalog.authors(),
        price_range=RangeSchema(**catalog.price_range().to_dict()),
        year_range=RangeSchema(**catalog.year_range().to_dict()),
    )


@app.get("/api/books/{book_id}", response_model=BookSchema)
def get_book(book_id: str):
    book = get_catalog().get_book(book_id)
    if book is None:
        raise BookNotFoundError(book_id)
    return book_to_schema(book)


@app.get("/api/books/{book_id}/recommendations", response_model=BookListResponse)
def get_recommendations(book_id: str, limit: int = Query(default=4, ge=1, le=50)):
    catalog = get_catalog()
    if catalog.get_book(book_id) is None:
        raise BookNotFoundError(book_id)
    books = catalog.recommend(book_id, limit=limit)
    return BookListResponse(books=[book_to_schema(b) for b in books], count=len(books))


# --- Review Endpoints ---


@app.get("/api/books/{book_id}/reviews", response_model=ReviewListResponse)
def list_book_reviews(book_id: str, x_session_id: Optional[str] = Header(default=None)):
    storefront = get_storefront(x_session_id)
    storefront.require_book(book_id)
    reviews = storefront.reviews.list_for_book(book_id)
    return ReviewListResponse(reviews=[review_to_schema(r) for r in reviews], count=len(reviews))


@app.post("/api/books/{book_id}/reviews", response_model=ReviewSchema, status_code=201)
def create_book_review(
    book_id: str,
    request: ReviewCreateRequest,
    x_session_id: Optional[str] = Header(default=None),
):
    """Review a book as the logged-in user."""
    storefront = get_storefront(x_session_id)
    storefront.require_book(book_id)
    user = storefront.current_user
    if user is None:
        raise AuthenticationRequiredError()

    review = storefront.reviews.create(
        book_id=book_id,
        user_id=user.id,
        user_name=user.name,
        rating=request.rating,
        title=request.title,
        content=request.content,
    )
    return review_to_schema(review)


@app.get("/api/books/{book_id}/rating", response_model=RatingStatsResponse)
def get_book_rating(book_id: str, x_session_id: Optional[str] = Header(default=None)):
    storefront = get_storefront(x_session_id)
    storefront.require_book(book_id)
    return RatingStatsResponse(**storefront.reviews.rating_stats(book_id).to_dict())


@app.patch("/api/reviews/{review_id}", response_model=ReviewSchema)
def update_review(
    review_id: str,
    request: ReviewUpdateRequest,
    x_session_id: Optional[str] = Header(default=None),
):
    storefront = get_storefront(x_session_id)
    review = storefront.reviews.update(
        review_id, rating=request.rating, title=request.title, content=request.content
    )
    if review is None:
        raise ReviewNotFoundError(review_id)
    return review_to_schema(review)


@app.delete("/api/reviews/{review_id}", status_code=204)
def delete_review(review_id: str, x_session_id: Optional[str] = Header(default=None)):
    if not get_storefront(x_session_id).reviews.delete(review_id):
        raise ReviewNotFoundError(review_id)


@app.post("/api/reviews/{review_id}/helpful", response_model=ReviewSchema)
def mark_review_helpful(review_id: str, x_session_id: Optional[str] = Header(default=None)):
    review = get_storefront(x_session_id).reviews.mark_helpful(review_id)
    if review is None:
        raise ReviewNotFoundError(review_id)
    return review_to_schema(review)


# --- Cart Endpoints ---


@app.get("/api/cart", response_model=CartResponse)
def get_cart(x_session_id: Optional[str] = Header(default=None)):
    return cart_response(get_storefront(x_session_id))


@app.post("/api/cart/items", response_model=CartResponse)
def add_cart_item(request: CartAddRequest, x_session_id: Optional[str] = Header(default=None)):
    storefront = get_storefront(x_session_id)
    storefront.add_to_cart(request.book_id)
    return cart_response(storefront)


@app.put("/api/cart/items/{book_id}", response_model=CartResponse)
def set_cart_quantity(
    book_id: str,
    request: CartQuantityRequest,
    x_session_id: Optional[str] = Header(default=None),
):
    """Set a line's quantity; zero or less removes the line."""
    storefront = get_storefront(x_session_id)
    storefront.cart.set_quantity(book_id, request.quantity)
    return cart_response(storefront)


@app.delete("/api/cart/items/{book_id}", response_model=CartResponse)
def remove_cart_item(book_id: str, x_session_id: Optional[str] = Header(default=None)):
    storefront = get_storefront(x_session_id)
    storefront.cart.remove(book_id)
    return cart_response(storefront)


@app.delete("/api/cart", response_model=CartResponse)
def clear_cart(x_session_id: Optional[str] = Header(default=None)):
    storefront = get_storefront(x_session_id)
    storefront.cart.clear()
    return cart_response(storefront)


# --- Wishlist Endpoints ---


@app.get("/api/wishlist", response_model=WishlistResponse)
def get_wishlist(x_session_id: Optional[str] = Header(default=None)):
    return wishlist_response(get_storefront(x_session_id))


@app.post("/api/wishlist/move-to-cart", response_model=CartResponse)
def move_wishlist_to_cart(x_session_id: Optional[str] = Header(default=None)):
    storefront = get_storefront(x_session_id)
    storefront.move_wishlist_to_cart()
    return cart_response(storefront)


@app.post("/api/wishlist/{book_id}", response_model=WishlistResponse)
def add_wishlist_item(book_id: str, x_session_id: Optional[str] = Header(default=None)):
    storefront = get_storefront(x_session_id)
    storefront.wishlist.add(storefront.user_id, storefront.require_book(book_id))
    return wishlist_response(storefront)


@app.post("/api/wishlist/{book_id}/toggle", response_model=WishlistToggleResponse)
def toggle_wishlist_item(book_id: str, x_session_id: Optional[str] = Header(default=None)):
    storefront = get_storefront(x_session_id)
    user_id = storefront.user_id
    in_wishlist = storefront.wishlist.toggle(user_id, storefront.require_book(book_id))
    return WishlistToggleResponse(
        in_wishlist=in_wishlist, count=storefront.wishlist.count(user_id)
    )


@app.delete("/api/wishlist/{book_id}", response_model=WishlistResponse)
def remove_wishlist_item(book_id: str, x_session_id: Optional[str] = Header(default=None)):
    storefront = get_storefront(x_session_id)
    storefront.wishlist.remove(storefront.user_id, book_id)
    return wishlist_response(storefront)


@app.delete("/api/wishlist", response_model=WishlistResponse)
def clear_wishlist(x_session_id: Optional[str] = Header(default=None)):
    storefront = get_storefront(x_session_id)
    storefront.wishlist.clear(storefront.user_id)
    return wishlist_response(storefront)


# --- Order Endpoints ---


@app.post("/api/checkout", response_model=OrderSchema, status_code=201)
def checkout(request: CheckoutRequest, x_session_id: Optional[str] = Header(default=None)):
    """Turn the session's cart into an order and empty the cart."""
    storefront = get_storefront(x_session_id)
    order = storefront.checkout(
        shipping_address=address_from_schema(request.shipping_address),
        billing_address=(
            address_from_schema(request.billing_address) if request.billing_address else None
        ),
        payment_method=PaymentMethod.from_dict(request.payment_method.model_dump()),
    )
    return order_to_schema(order)


@app.get("/api/orders", response_model=OrderListResponse)
def list_orders(x_session_id: Optional[str] = Header(default=None)):
    storefront = get_storefront(x_session_id)
    orders = storefront.orders.list_for_user(storefront.user_id)
    return OrderListResponse(orders=[order_to_schema(o) for o in orders], count=len(orders))


def require_visible_order(storefront: Storefront, order_id: str) -> Order:
    """
    Get an order the session may act on: its own, or any order for an admin.

    Other users' orders are reported as not found.
    """
    order = storefront.orders.get(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    if order.user_id != storefront.user_id and not is_admin(storefront.current_user):
        raise OrderNotFoundError(order_id)
    return order


@app.get("/api/orders/{order_id}", response_model=OrderSchema)
def get_order(order_id: str, x_session_id: Optional[str] = Header(default=None)):
    return order_to_schema(require_visible_order(get_storefront(x_session_id), order_id))


@app.post("/api/orders/{order_id}/cancel", response_model=OrderSchema)
def cancel_order(order_id: str, x_session_id: Optional[str] = Header(default=None)):
    storefront = get_storefront(x_session_id)
    require_visible_order(storefront, order_id)
    order = storefront.orders.cancel(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order_to_schema(order)


@app.patch("/api/orders/{order_id}/status", response_model=OrderSchema)
def update_order_status(
    order_id: str,
    request: OrderStatusRequest,
    x_session_id: Optional[str] = Header(default=None),
):
    storefront = get_storefront(x_session_id)
    require_visible_order(storefront, order_id)
    order = storefront.orders.update_status(
        order_id, request.status, tracking_number=request.tracking_number
    )
    if order is None:
        raise OrderNotFoundError(order_id)
    return order_to_schema(order)


# --- Auth Endpoints ---


@app.post("/api/auth/register", response_model=AuthResponse)
def register(request: RegisterRequest, x_session_id: Optional[str] = Header(default=None)):
    """Register a user. A duplicate email comes back as success=false, not an HTTP error."""
    storefront = get_storefront(x_session_id)
    result = storefront.users.register(
        storefront.session, request.email, request.password, request.name
    )
    return auth_to_response(result)


@app.post("/api/auth/login", response_model=AuthResponse)
def login(request: LoginRequest, x_session_id: Optional[str] = Header(default=None)):
    storefront = get_storefront(x_session_id)
    result = storefront.users.login(storefront.session, request.email, request.password)
    return auth_to_response(result)


@app.post("/api/auth/logout", status_code=204)
def logout(x_session_id: Optional[str] = Header(default=None)):
    storefront = get_storefront(x_session_id)
    storefront.users.logout(storefront.session)


@app.get("/api/auth/me", response_model=UserSchema)
def current_user(x_session_id: Optional[str] = Header(default=None)):
    user = get_storefront(x_session_id).current_user
    if user is None:
        raise AuthenticationRequiredError()
    return UserSchema(**user.to_dict())
