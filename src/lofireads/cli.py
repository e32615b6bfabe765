"""Command-line interface for lofireads."""

import argparse
import json
import logging
import sys

from . import __version__
from .catalog import BookFilters, Catalog, SortOption
from .errors import BookNotFoundError, LofiReadsError
from .models import Book


def format_book(book: Book) -> str:
    """Format a book as a single listing line."""
    return f"{book.id:>4}  {book.title}, {book.author} ({book.year}) [{book.genre}]  ${book.price:.2f}"


def _print_books(books: list[Book], as_json: bool) -> None:
    if as_json:
        print(json.dumps([b.to_dict() for b in books], indent=2))
        return
    if not books:
        print("No books found.")
        return
    for book in books:
        print(format_book(book))
    print(f"\n{len(books)} book(s)")


def cmd_books(args: argparse.Namespace) -> int:
    """List catalog books with optional filters and sorting."""
    try:
        filters = BookFilters(
            genres=args.genre or [],
            authors=args.author or [],
            min_price=args.min_price,
            max_price=args.max_price,
            min_year=args.min_year,
            max_year=args.max_year,
            query=args.query,
        )
        books = Catalog().list_books(filters, sort=args.sort)
        _print_books(books, args.json)
        return 0

    except LofiReadsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_book(args: argparse.Namespace) -> int:
    """Show one book in detail."""
    try:
        book = Catalog().get_book(args.book_id)
        if book is None:
            raise BookNotFoundError(args.book_id)

        if args.json:
            print(json.dumps(book.to_dict(), indent=2))
            return 0

        print(book.title)
        print(f"  Author: {book.author}")
        print(f"  Genre:  {book.genre}")
        print(f"  Year:   {book.year}")
        print(f"  Pages:  {book.pages}")
        print(f"  ISBN:   {book.isbn}")
        print(f"  Price:  ${book.price:.2f}")
        print()
        print(f"  {book.description}")
        return 0

    except LofiReadsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_facets(args: argparse.Namespace) -> int:
    """Show the values available for catalog filters."""
    catalog = Catalog()
    facets = {
        "genres": catalog.genres(),
        "authors": catalog.authors(),
        "price_range": catalog.price_range().to_dict(),
        "year_range": catalog.year_range().to_dict(),
    }
    if args.json:
        print(json.dumps(facets, indent=2))
        return 0

    price, year = facets["price_range"], facets["year_range"]
    print(f"Genres:  {', '.join(facets['genres'])}")
    print(f"Authors: {', '.join(facets['authors'])}")
    print(f"Price:   ${price['min']:.2f} - ${price['max']:.2f}")
    print(f"Year:    {year['min']} - {year['max']}")
    return 0


def cmd_recommend(args: argparse.Namespace) -> int:
    """List books related to a book."""
    try:
        catalog = Catalog()
        if catalog.get_book(args.book_id) is None:
            raise BookNotFoundError(args.book_id)
        _print_books(catalog.recommend(args.book_id, limit=args.limit), args.json)
        return 0

    except LofiReadsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        print("Starting lofireads API server...")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string
        app_target = "lofireads.api:app" if args.reload else None
        if app_target is None:
            from .api import app
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=1,  # Carts live in process memory
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="lofireads",
        description="Browse the Lofi Reads catalog and run the storefront API.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # books
    books_parser = subparsers.add_parser("books", help="List catalog books")
    books_parser.add_argument(
        "--genre", "-g", action="append", help="Only this genre (repeatable)"
    )
    books_parser.add_argument(
        "--author", "-a", action="append", help="Only this author (repeatable)"
    )
    books_parser.add_argument("--min-price", type=float, help="Minimum price (inclusive)")
    books_parser.add_argument("--max-price", type=float, help="Maximum price (inclusive)")
    books_parser.add_argument("--min-year", type=int, help="Earliest year (inclusive)")
    books_parser.add_argument("--max-year", type=int, help="Latest year (inclusive)")
    books_parser.add_argument(
        "--query", "-q", help="Text to find in title, author, description or genre"
    )
    books_parser.add_argument(
        "--sort", "-s",
        choices=[o.value for o in SortOption],
        help="Sort order (default: catalog order)",
    )
    books_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # book
    book_parser = subparsers.add_parser("book", help="Show one book")
    book_parser.add_argument("book_id", help="Book ID")
    book_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # facets
    facets_parser = subparsers.add_parser("facets", help="Show genres, authors and ranges")
    facets_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # recommend
    recommend_parser = subparsers.add_parser("recommend", help="Recommend related books")
    recommend_parser.add_argument("book_id", help="Book ID")
    recommend_parser.add_argument(
        "--limit", "-n", type=int, default=4, help="Number of books (default: 4)"
    )
    recommend_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", "-p", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    commands = {
        "books": cmd_books,
        "book": cmd_book,
        "facets": cmd_facets,
        "recommend": cmd_recommend,
        "serve": cmd_serve,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
