"""Browse, search and sort nonprofits and volunteer opportunities."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from .geo import distance_between
from .models import Location, Nonprofit, Opportunity, RatedNonprofit, User

PREFERRED_CATEGORY_RELEVANCE = 100
GOOD_RATING_RELEVANCE = 20
GOOD_RATING = 4.0

NONPROFIT_SORTS = ("distance", "name", "donations", "volunteers", "rating", "newest", "recommended")
OPPORTUNITY_SORTS = ("recommended", "distance", "newest", "oldest", "deadline", "spots")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class NonprofitListing:
    nonprofit: Nonprofit
    avg_rating: float = 0.0
    reviews_count: int = 0
    distance: Optional[float] = None
    is_favorite: bool = False
    relevance_score: int = 0

    @property
    def search_text(self) -> tuple:
        return (self.nonprofit.name, self.nonprofit.description)

    @property
    def category(self) -> Optional[str]:
        return self.nonprofit.category


@dataclass
class OpportunityListing:
    opportunity: Opportunity
    distance: Optional[float] = None
    is_preferred_category: bool = False

    @property
    def search_text(self) -> tuple:
        return (self.opportunity.title, self.opportunity.description)

    @property
    def category(self) -> Optional[str]:
        return self.opportunity.category


def build_nonprofit_listings(rated: Iterable[RatedNonprofit], user: Optional[User] = None,
                             origin: Optional[Location] = None) -> list[NonprofitListing]:
    preferred = set(user.preferred_categories) if user else set()
    favorites = set(user.favorite_nonprofits) if user else set()

    listings = []
    for item in rated:
        avg = item.avg_rating or 0.0
        relevance = 0
        if item.nonprofit.category in preferred:
            relevance += PREFERRED_CATEGORY_RELEVANCE
        if avg >= GOOD_RATING:
            relevance += GOOD_RATING_RELEVANCE
        listings.append(NonprofitListing(
            nonprofit=item.nonprofit,
            avg_rating=avg,
            reviews_count=item.reviews_count,
            distance=distance_between(origin, item.nonprofit.location),
            is_favorite=item.id in favorites,
            relevance_score=relevance,
        ))
    return listings


def build_opportunity_listings(opportunities: Iterable[Opportunity],
                               origin: Optional[Location] = None,
                               preferred_categories: Iterable[str] = ()) -> list[OpportunityListing]:
    preferred = set(preferred_categories)
    return [
        OpportunityListing(
            opportunity=opp,
            distance=distance_between(origin, opp.location),
            is_preferred_category=opp.category in preferred,
        )
        for opp in opportunities
    ]


def filter_listings(listings, query: Optional[str] = None, category: Optional[str] = None,
                    max_miles: Optional[float] = None) -> list:
    """Search text, restrict to a category and/or a radius.

    Works for both nonprofit and opportunity listings. A category of "all"
    means no category filter. With a radius, listings of unknown distance
    are dropped.
    """
    results = list(listings)

    if query:
        needle = query.lower()
        results = [
            item for item in results
            if any(needle in (text or "").lower() for text in item.search_text)
        ]

    if category and category != "all":
        results = [item for item in results if item.category == category]

    if max_miles is not None:
        results = [item for item in results
                   if item.distance is not None and item.distance <= max_miles]

    return results


def _name(listing: NonprofitListing) -> str:
    return listing.nonprofit.name.casefold()


def _created(value: Optional[datetime]) -> datetime:
    return value or _EPOCH


def sort_nonprofit_listings(listings: Iterable[NonprofitListing], sort_by: str = "name",
                            has_origin: bool = True) -> list[NonprofitListing]:
    """Order nonprofit listings.

    Without a user location, "distance" falls back to alphabetical order.
    """
    if sort_by not in NONPROFIT_SORTS:
        raise ValueError(f"Unknown sort: {sort_by}")
    items = list(listings)

    if sort_by == "distance":
        if not has_origin:
            return sorted(items, key=_name)
        return sorted(items, key=lambda x: (x.distance is None, x.distance or 0.0))
    if sort_by == "name":
        return sorted(items, key=_name)
    if sort_by == "donations":
        return sorted(items, key=lambda x: x.nonprofit.total_donations_received, reverse=True)
    if sort_by == "volunteers":
        return sorted(items, key=lambda x: x.nonprofit.volunteers_count, reverse=True)
    if sort_by == "rating":
        return sorted(items, key=lambda x: x.avg_rating, reverse=True)
    if sort_by == "newest":
        return sorted(items, key=lambda x: _created(x.nonprofit.created_at), reverse=True)
    return sorted(items, key=lambda x: (-x.relevance_score, -x.avg_rating, _name(x)))


def sort_opportunity_listings(listings: Iterable[OpportunityListing], sort_by: str = "recommended",
                              has_origin: bool = True) -> list[OpportunityListing]:
    """Order opportunity listings.

    Without a user location, "distance" falls back to newest first.
    """
    if sort_by not in OPPORTUNITY_SORTS:
        raise ValueError(f"Unknown sort: {sort_by}")
    items = list(listings)

    def newest(x):
        return _created(x.opportunity.created_at)

    if sort_by == "recommended":
        items.sort(key=newest, reverse=True)
        return sorted(items, key=lambda x: not x.is_preferred_category)
    if sort_by == "distance":
        if not has_origin:
            return sorted(items, key=newest, reverse=True)
        return sorted(items, key=lambda x: (x.distance is None, x.distance or 0.0))
    if sort_by == "newest":
        return sorted(items, key=newest, reverse=True)
    if sort_by == "oldest":
        return sorted(items, key=newest)
    if sort_by == "deadline":
        return sorted(items, key=lambda x: (x.opportunity.end_date is None,
                                            _created(x.opportunity.end_date)))
    return sorted(items, key=lambda x: x.opportunity.volunteers_needed - x.opportunity.volunteers_signed_up,
                  reverse=True)
