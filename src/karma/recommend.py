"""Personalized recommendations for nonprofits and volunteer opportunities.

Both scorers are additive: each signal contributes a fixed number of points
and candidates are ranked by their total. Scoring is synchronous and works
on snapshots the caller has already fetched.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from .geo import distance_between
from .models import (
    Donation,
    Location,
    Nonprofit,
    Opportunity,
    RatedNonprofit,
    Review,
    User,
)

DEFAULT_LIMIT = 3

NONPROFIT_WEIGHTS = {
    "category": 10,
    "top_rated": 8,      # avg rating >= 4.5
    "well_rated": 5,     # avg rating >= 4.0
    "many_reviews": 3,   # review count >= 10
    "new": 2,            # created within NEW_NONPROFIT_AGE
}
TOP_RATING = 4.5
GOOD_RATING = 4.0
MANY_REVIEWS = 10
NEW_NONPROFIT_AGE = timedelta(days=30)

OPPORTUNITY_WEIGHTS = {
    "category": 10,
    "supported": 15,
    "urgent": 5,
}
URGENT_SPOTS = 3


@dataclass(frozen=True)
class InterestProfile:
    """What we know about a user's interests and past support."""
    interested_categories: frozenset = frozenset()
    supported_nonprofit_ids: frozenset = frozenset()


@dataclass
class ScoredNonprofit:
    rated: RatedNonprofit
    score: int

    @property
    def nonprofit(self) -> Nonprofit:
        return self.rated.nonprofit


@dataclass
class ScoredOpportunity:
    opportunity: Opportunity
    score: int
    distance: Optional[float] = None


def build_interest_profile(user: Optional[User], donations: Iterable[Donation],
                           reviews: Iterable[Review]) -> InterestProfile:
    """Combine preferences, donation history, reviews and favorites."""
    donations = list(donations or [])
    reviews = list(reviews or [])

    categories = set(user.preferred_categories) if user else set()
    categories.update(d.category for d in donations if d.category)

    supported = {d.nonprofit_id for d in donations}
    supported.update(r.nonprofit_id for r in reviews)
    if user:
        supported.update(user.favorite_nonprofits)

    return InterestProfile(
        interested_categories=frozenset(categories),
        supported_nonprofit_ids=frozenset(supported),
    )


def rate_nonprofits(nonprofits: Iterable[Nonprofit],
                    reviews: Iterable[Review]) -> list[RatedNonprofit]:
    """Annotate each nonprofit with its average rating and review count.

    Nonprofits without reviews get avg_rating None.
    """
    totals: dict[str, list[int]] = {}
    for review in reviews or []:
        totals.setdefault(review.nonprofit_id, []).append(review.rating)

    rated = []
    for org in nonprofits or []:
        ratings = totals.get(org.id, [])
        avg = sum(ratings) / len(ratings) if ratings else None
        rated.append(RatedNonprofit(nonprofit=org, avg_rating=avg, reviews_count=len(ratings)))
    return rated


def score_nonprofit(rated: RatedNonprofit, profile: InterestProfile,
                    now: Optional[datetime] = None) -> int:
    """Recommendation score for a single nonprofit."""
    now = now or datetime.now(timezone.utc)
    org = rated.nonprofit
    score = 0

    if org.category and org.category in profile.interested_categories:
        score += NONPROFIT_WEIGHTS["category"]

    avg = rated.avg_rating or 0.0
    if avg >= TOP_RATING:
        score += NONPROFIT_WEIGHTS["top_rated"]
    elif avg >= GOOD_RATING:
        score += NONPROFIT_WEIGHTS["well_rated"]

    if rated.reviews_count >= MANY_REVIEWS:
        score += NONPROFIT_WEIGHTS["many_reviews"]

    if org.created_at is not None and now - org.created_at <= NEW_NONPROFIT_AGE:
        score += NONPROFIT_WEIGHTS["new"]

    return score


def recommend_nonprofits(candidates: Iterable[RatedNonprofit], profile: InterestProfile,
                         limit: int = DEFAULT_LIMIT,
                         now: Optional[datetime] = None) -> list[ScoredNonprofit]:
    """Top nonprofits the user has not supported yet.

    Ties on score are broken by name (case-insensitive), then id.
    """
    now = now or datetime.now(timezone.utc)
    scored = [
        ScoredNonprofit(rated=rated, score=score_nonprofit(rated, profile, now))
        for rated in candidates or []
        if rated.id not in profile.supported_nonprofit_ids
    ]
    scored.sort(key=lambda s: (-s.score, s.rated.name.casefold(), s.rated.id))
    return scored[:limit]


def score_opportunity(opportunity: Opportunity, profile: InterestProfile) -> int:
    """Recommendation score for a single volunteer opportunity."""
    score = 0

    if opportunity.category and opportunity.category in profile.interested_categories:
        score += OPPORTUNITY_WEIGHTS["category"]

    if opportunity.nonprofit_id in profile.supported_nonprofit_ids:
        score += OPPORTUNITY_WEIGHTS["supported"]

    # Raw difference: over-subscribed opportunities are closed, not urgent
    spots_left = opportunity.volunteers_needed - opportunity.volunteers_signed_up
    if 0 < spots_left <= URGENT_SPOTS:
        score += OPPORTUNITY_WEIGHTS["urgent"]

    return score


def _created_key(created_at: Optional[datetime]) -> float:
    return -created_at.timestamp() if created_at else float("inf")


def recommend_opportunities(candidates: Iterable[Opportunity], profile: InterestProfile,
                            limit: int = DEFAULT_LIMIT,
                            origin: Optional[Location] = None) -> list[ScoredOpportunity]:
    """Top opportunities for the user, newest first among equal scores."""
    scored = [
        ScoredOpportunity(
            opportunity=opp,
            score=score_opportunity(opp, profile),
            distance=distance_between(origin, opp.location),
        )
        for opp in candidates or []
    ]
    scored.sort(key=lambda s: (-s.score, _created_key(s.opportunity.created_at)))
    return scored[:limit]
