"""Review storage for lofireads."""

from __future__ import annotations

import logging
import math

from .models import RatingStats, Review, _utc_now, generate_review_id, parse_timestamp
from .storage import REVIEWS_KEY, KeyValueStore, parse_records

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def clamp_rating(rating: int) -> int:
    """Clamp a rating into 1..5. Out-of-range input is not an error."""
    return max(MIN_RATING, min(MAX_RATING, int(rating)))


def _round_half_up(value: float) -> float:
    """Round to one decimal, halves rounding up."""
    return math.floor(value * 10 + 0.5) / 10


def _newest_first(reviews: list[Review]) -> list[Review]:
    return sorted(reviews, key=lambda r: parse_timestamp(r.created_at), reverse=True)


class ReviewStore:
    """Manages persisted book reviews and rating statistics."""

    def __init__(self, kv: KeyValueStore | None = None):
        self.kv = kv or KeyValueStore()

    def _load(self) -> list[Review]:
        return parse_records(REVIEWS_KEY, self.kv.get(REVIEWS_KEY, []), Review.from_dict)

    def create(
        self,
        book_id: str,
        user_id: str,
        user_name: str,
        rating: int,
        title: str,
        content: str,
    ) -> Review:
        """Create a review. The rating is clamped into 1..5."""
        self.kv.delay(300)
        now = _utc_now()
        review = Review(
            id=generate_review_id(),
            book_id=book_id,
            user_id=user_id,
            user_name=user_name,
            rating=clamp_rating(rating),
            title=title,
            content=content,
            helpful=0,
            created_at=now,
            updated_at=now,
        )
        with self.kv.transaction(REVIEWS_KEY, []) as txn:
            txn.value.append(review.to_dict())
        logger.info("Review %s: %s rated %s %d/5", review.id, user_id, book_id, review.rating)
        return review

    def get(self, review_id: str) -> Review | None:
        self.kv.delay(100)
        return next((r for r in self._load() if r.id == review_id), None)

    def list_for_book(self, book_id: str) -> list[Review]:
        """List a book's reviews, newest first."""
        self.kv.delay(200)
        return _newest_first([r for r in self._load() if r.book_id == book_id])

    def list_for_user(self, user_id: str) -> list[Review]:
        """List a user's reviews, newest first."""
        self.kv.delay(200)
        return _newest_first([r for r in self._load() if r.user_id == user_id])

    def get_user_review_for_book(self, user_id: str, book_id: str) -> Review | None:
        self.kv.delay(100)
        return next(
            (r for r in self._load() if r.user_id == user_id and r.book_id == book_id),
            None,
        )

    def update(
        self,
        review_id: str,
        rating: int | None = None,
        title: str | None = None,
        content: str | None = None,
    ) -> Review | None:
        """Merge the given fields into a review and refresh its update time."""
        self.kv.delay(200)
        with self.kv.transaction(REVIEWS_KEY, []) as txn:
            for data in txn.value:
                if not isinstance(data, dict) or data.get("id") != review_id:
                    continue
                if rating is not None:
                    data["rating"] = clamp_rating(rating)
                if title is not None:
                    data["title"] = title
                if content is not None:
                    data["content"] = content
                data["updated_at"] = _utc_now()
                return Review.from_dict(data)
        return None

    def delete(self, review_id: str) -> bool:
        """Delete a review. Returns True if one was removed."""
        self.kv.delay(200)
        with self.kv.transaction(REVIEWS_KEY, []) as txn:
            kept = [r for r in txn.value if not (isinstance(r, dict) and r.get("id") == review_id)]
            removed = len(kept) != len(txn.value)
            txn.value = kept
        if removed:
            logger.info("Deleted review %s", review_id)
        return removed

    def mark_helpful(self, review_id: str) -> Review | None:
        self.kv.delay(100)
        with self.kv.transaction(REVIEWS_KEY, []) as txn:
            for data in txn.value:
                if isinstance(data, dict) and data.get("id") == review_id:
                    data["helpful"] = int(data.get("helpful", 0)) + 1
                    return Review.from_dict(data)
        return None

    def rating_stats(self, book_id: str) -> RatingStats:
        """Average (1 decimal), count and per-star distribution for a book."""
        self.kv.delay(150)
        ratings = [r.rating for r in self._load() if r.book_id == book_id]
        distribution = {star: 0 for star in range(MIN_RATING, MAX_RATING + 1)}
        for rating in ratings:
            distribution[rating] = distribution.get(rating, 0) + 1
        average = _round_half_up(sum(ratings) / len(ratings)) if ratings else 0
        return RatingStats(
            book_id=book_id,
            average=average,
            total=len(ratings),
            distribution=distribution,
        )

    def average_ratings(self) -> dict[str, float]:
        """Average rating per reviewed book ID."""
        totals: dict[str, list[int]] = {}
        for review in self._load():
            totals.setdefault(review.book_id, []).append(review.rating)
        return {book_id: sum(r) / len(r) for book_id, r in totals.items()}
