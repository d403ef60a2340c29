"""Google Business Profile reviews import over the v4 REST API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Final, Protocol

import httpx

from site_builder.config import Settings

DEFAULT_PAGE_SIZE: Final[int] = 50
STAR_RATINGS: Final[dict[str, int]] = {
    "ONE": 1,
    "TWO": 2,
    "THREE": 3,
    "FOUR": 4,
    "FIVE": 5,
}

_logger = logging.getLogger("site_builder.reviews")


class ReviewsFetchError(Exception):
    """Raised when reviews cannot be fetched or decoded."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass(slots=True, frozen=True)
class ReviewRecord:
    review_id: str
    reviewer_name: str | None
    rating: int
    comment: str | None
    review_date: datetime | None


@dataclass(slots=True, frozen=True)
class ReviewSummary:
    """Reviews plus aggregate rating reported by the profile."""

    reviews: tuple[ReviewRecord, ...]
    average_rating: float | None
    total_count: int


class ReviewsPort(Protocol):
    async def fetch(
        self,
        account_ref: str,
        location_ref: str,
        *,
        access_token: str,
    ) -> ReviewSummary:
        """Return the latest reviews for one business profile location."""


def star_rating_to_number(rating: str | None) -> int:
    """Map a ``ONE``..``FIVE`` star enum to 1..5; unknown values count as 5."""

    if rating is None:
        return 5
    return STAR_RATINGS.get(rating.strip().upper(), 5)


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_reviews_payload(payload: Any) -> ReviewSummary:
    if not isinstance(payload, dict):
        raise ReviewsFetchError("Reviews response body was not an object")

    reviews: list[ReviewRecord] = []
    raw_reviews = payload.get("reviews") or []
    if not isinstance(raw_reviews, list):
        raise ReviewsFetchError("Reviews response field 'reviews' was not a list")

    for item in raw_reviews:
        if not isinstance(item, dict):
            continue
        review_id = item.get("reviewId")
        if not isinstance(review_id, str) or not review_id:
            continue
        reviewer = item.get("reviewer")
        reviewer_name = (
            reviewer.get("displayName") if isinstance(reviewer, dict) else None
        )
        reviews.append(
            ReviewRecord(
                review_id=review_id,
                reviewer_name=reviewer_name,
                rating=star_rating_to_number(item.get("starRating")),
                comment=item.get("comment"),
                review_date=_parse_timestamp(item.get("createTime")),
            )
        )

    average_rating = payload.get("averageRating")
    total_count = payload.get("totalReviewCount")
    return ReviewSummary(
        reviews=tuple(reviews),
        average_rating=(
            float(average_rating)
            if isinstance(average_rating, (int, float))
            else None
        ),
        total_count=int(total_count) if isinstance(total_count, int) else len(reviews),
    )


class GoogleBusinessReviewsClient:
    """ReviewsPort backed by ``mybusiness.googleapis.com/v4``."""

    def __init__(
        self,
        *,
        base_url: str = "https://mybusiness.googleapis.com/v4",
        timeout_seconds: float = 15.0,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be greater than zero")
        if page_size <= 0:
            raise ValueError("page_size must be greater than zero")

        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._page_size = page_size

    @classmethod
    def from_settings(cls, settings: Settings) -> GoogleBusinessReviewsClient:
        return cls(
            base_url=settings.GBP_REVIEWS_BASE_URL,
            timeout_seconds=settings.REVIEWS_TIMEOUT_SECONDS,
        )

    async def fetch(
        self,
        account_ref: str,
        location_ref: str,
        *,
        access_token: str,
    ) -> ReviewSummary:
        account = account_ref.strip("/")
        location = location_ref.strip("/")
        url = f"{self._base_url}/{account}/{location}/reviews"
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout_seconds)
            ) as client:
                response = await client.get(
                    url,
                    params={
                        "pageSize": self._page_size,
                        "orderBy": "updateTime desc",
                    },
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.HTTPError as exc:
            raise ReviewsFetchError(f"Reviews request failed: {exc}") from exc

        if response.status_code >= 400:
            detail = f"GBP API error: {response.status_code}"
            try:
                error_body = response.json()
            except ValueError:
                error_body = None
            if isinstance(error_body, dict) and isinstance(
                error_body.get("error"), dict
            ):
                detail = str(error_body["error"].get("message") or detail)
            raise ReviewsFetchError(detail, status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise ReviewsFetchError("Reviews response body was not JSON") from exc

        summary = parse_reviews_payload(payload)
        _logger.info(
            "reviews_fetched",
            extra={
                "review_count": len(summary.reviews),
                "total_count": summary.total_count,
                "average_rating": summary.average_rating,
            },
        )
        return summary


__all__ = [
    "GoogleBusinessReviewsClient",
    "ReviewRecord",
    "ReviewSummary",
    "ReviewsFetchError",
    "ReviewsPort",
    "parse_reviews_payload",
    "star_rating_to_number",
]
