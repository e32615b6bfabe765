"""lofireads - catalog, cart, wishlist and order state for the Lofi Reads bookshop."""

__version__ = "0.1.0"
