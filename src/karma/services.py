"""Application services: fetch snapshots from the backend, then score them.

Every service takes the backend collaborator and the current user snapshot
explicitly. Independent fetches run concurrently and the pure scoring
functions only see the joined, fully resolved results.
"""

import asyncio
import logging
import re
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Union

from . import backend as entities
from .achievements import AchievementProgress, ImpactStats, evaluate_achievements
from .conversations import Conversation, build_conversations, conversation_id_for, recipient_for
from .directory import (
    build_nonprofit_listings,
    build_opportunity_listings,
    filter_listings,
    sort_nonprofit_listings,
    sort_opportunity_listings,
)
from .fees import FeeBreakdown, coerce_amount, next_donation_date, split_donation
from .geo import nearby
from .models import (
    Donation,
    Frequency,
    Location,
    Message,
    Nonprofit,
    Opportunity,
    RecurringDonation,
    RecurringStatus,
    Review,
    User,
    VolunteerApplication,
    clamp_rating,
)
from .recommend import (
    DEFAULT_LIMIT,
    InterestProfile,
    ScoredNonprofit,
    ScoredOpportunity,
    build_interest_profile,
    rate_nonprofits,
    recommend_nonprofits,
    recommend_opportunities,
)
from .recurring import upcoming

logger = logging.getLogger(__name__)

DISASTER_CATEGORY = "disaster_relief"
DISASTER_ALERT_RADIUS_MILES = 150
DISASTER_ALERT_LIMIT = 2
RECENT_NONPROFITS_LIMIT = 5
ACTIVE = {"is_active": True}


@dataclass(frozen=True)
class DashboardStats:
    total_nonprofits: int
    total_opportunities: int
    total_donations: int
    my_donations: Decimal
    my_volunteer_hours: float


async def _nothing() -> list:
    return []


def _parse(model, rows) -> list:
    """Parse backend rows into models, skipping malformed ones."""
    parsed = []
    for row in rows or []:
        try:
            parsed.append(model.from_dict(row))
        except (KeyError, ValueError, TypeError) as e:
            record_id = row.get("id") if isinstance(row, dict) else None
            logger.warning(f"Skipping malformed {model.__name__} record {record_id}: {e}")
    return parsed


def _user_donations(backend, user: Optional[User]):
    if user is None:
        return _nothing()
    return backend.filter(entities.DONATION, {"donor_id": user.id})


def _user_reviews(backend, user: Optional[User]):
    if user is None:
        return _nothing()
    return backend.filter(entities.REVIEW, {"reviewer_id": user.id})


def _last_four(card_number: Optional[str]) -> Optional[str]:
    digits = re.sub(r"\D", "", card_number or "")
    return digits[-4:] or None


def _transaction_id() -> str:
    return f"demo_txn_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


async def get_current_user(backend) -> Optional[User]:
    data = await backend.current_user()
    if not data:
        return None
    try:
        return User.from_dict(data)
    except (KeyError, ValueError, TypeError) as e:
        logger.warning(f"Could not read current user: {e}")
        return None


# =============================================================================
# RECOMMENDATIONS
# =============================================================================

async def load_interest_profile(backend, user: Optional[User]) -> InterestProfile:
    donations, reviews = await asyncio.gather(
        _user_donations(backend, user),
        _user_reviews(backend, user),
    )
    return build_interest_profile(user, _parse(Donation, donations), _parse(Review, reviews))


async def recommended_nonprofits(backend, user: Optional[User], limit: int = DEFAULT_LIMIT,
                                 now: Optional[datetime] = None) -> list[ScoredNonprofit]:
    """Nonprofits the user hasn't supported yet, best match first."""
    nonprofits, donations, user_reviews, all_reviews = await asyncio.gather(
        backend.list(entities.NONPROFIT),
        _user_donations(backend, user),
        _user_reviews(backend, user),
        backend.list(entities.REVIEW),
    )

    profile = build_interest_profile(user, _parse(Donation, donations), _parse(Review, user_reviews))
    rated = rate_nonprofits(_parse(Nonprofit, nonprofits), _parse(Review, all_reviews))
    recommended = recommend_nonprofits(rated, profile, limit=limit, now=now)
    logger.debug(f"Scored {len(rated)} nonprofits, recommending {len(recommended)}")
    return recommended


async def recommended_opportunities(backend, user: Optional[User],
                                    limit: int = DEFAULT_LIMIT) -> list[ScoredOpportunity]:
    """Active opportunities ranked by interest, past support and urgency."""
    opportunities, donations, reviews = await asyncio.gather(
        backend.filter(entities.OPPORTUNITY, ACTIVE),
        _user_donations(backend, user),
        _user_reviews(backend, user),
    )

    profile = build_interest_profile(user, _parse(Donation, donations), _parse(Review, reviews))
    origin = user.location if user else None
    return recommend_opportunities(_parse(Opportunity, opportunities), profile,
                                   limit=limit, origin=origin)


async def disaster_alerts(backend, user: Optional[User],
                          radius: float = DISASTER_ALERT_RADIUS_MILES,
                          limit: int = DISASTER_ALERT_LIMIT) -> list[tuple[Opportunity, float]]:
    """Nearest active disaster-relief opportunities within `radius` miles."""
    if user is None or user.location is None or not user.location.has_coordinates:
        return []
    rows = await backend.filter(entities.OPPORTUNITY, {"category": DISASTER_CATEGORY, **ACTIVE})
    alerts = nearby(_parse(Opportunity, rows), user.location, radius, lambda o: o.location)
    return alerts[:limit]


async def recent_nonprofits(backend, limit: int = RECENT_NONPROFITS_LIMIT) -> list[Nonprofit]:
    rows = await backend.list(entities.NONPROFIT, sort="-created_date", limit=limit)
    return _parse(Nonprofit, rows)


# =============================================================================
# IMPACT
# =============================================================================

async def impact_stats(backend, user: User) -> ImpactStats:
    donations, reviews = await asyncio.gather(
        _user_donations(backend, user),
        _user_reviews(backend, user),
    )
    total = sum((d.amount for d in _parse(Donation, donations)), Decimal("0"))
    return ImpactStats(
        total_donated=float(total),
        total_volunteer_hours=user.total_volunteer_hours,
        total_reviews=len(_parse(Review, reviews)),
    )


async def user_achievements(backend, user: User) -> list[AchievementProgress]:
    return evaluate_achievements(await impact_stats(backend, user))


async def dashboard_stats(backend, user: User) -> DashboardStats:
    nonprofits, opportunities, donations = await asyncio.gather(
        backend.list(entities.NONPROFIT),
        backend.filter(entities.OPPORTUNITY, ACTIVE),
        backend.list(entities.DONATION),
    )
    all_donations = _parse(Donation, donations)
    mine = sum((d.amount for d in all_donations if d.donor_id == user.id), Decimal("0"))
    return DashboardStats(
        total_nonprofits=len(nonprofits),
        total_opportunities=len(opportunities),
        total_donations=len(all_donations),
        my_donations=mine,
        my_volunteer_hours=user.total_volunteer_hours,
    )


# =============================================================================
# DIRECTORIES
# =============================================================================

async def nonprofit_directory(backend, user: Optional[User], origin: Optional[Location] = None,
                              query: Optional[str] = None, category: Optional[str] = None,
                              sort_by: str = "name", max_miles: Optional[float] = None):
    nonprofits, reviews = await asyncio.gather(
        backend.list(entities.NONPROFIT),
        backend.list(entities.REVIEW),
    )
    rated = rate_nonprofits(_parse(Nonprofit, nonprofits), _parse(Review, reviews))
    listings = build_nonprofit_listings(rated, user, origin)
    listings = filter_listings(listings, query=query, category=category,
                               max_miles=max_miles if origin else None)
    return sort_nonprofit_listings(listings, sort_by, has_origin=origin is not None)


async def opportunity_directory(backend, user: Optional[User], origin: Optional[Location] = None,
                                query: Optional[str] = None, category: Optional[str] = None,
                                sort_by: str = "recommended", max_miles: Optional[float] = None):
    rows = await backend.filter(entities.OPPORTUNITY, ACTIVE)
    preferred = user.preferred_categories if user else ()
    listings = build_opportunity_listings(_parse(Opportunity, rows), origin, preferred)
    listings = filter_listings(listings, query=query, category=category,
                               max_miles=max_miles if origin else None)
    return sort_opportunity_listings(listings, sort_by, has_origin=origin is not None)


# =============================================================================
# ACTIONS
# =============================================================================

async def donate(backend, user: User, nonprofit: Nonprofit, amount,
                 message: str = "", is_anonymous: bool = False,
                 card_number: Optional[str] = None) -> tuple[Donation, FeeBreakdown]:
    """Record a one-off donation.

    Payment is simulated: no card is charged. The donor's running total
    grows by the gross amount, the nonprofit's by the net amount.
    """
    fees = split_donation(amount)
    if fees.amount <= 0:
        raise ValueError("Donation amount must be greater than zero")

    logger.info(f"Simulating payment of ${fees.amount} to {nonprofit.name}")
    created = await backend.create(entities.DONATION, {
        "donor_id": user.id,
        "nonprofit_id": nonprofit.id,
        "category": nonprofit.category,
        "amount": float(fees.amount),
        "platform_fee": float(fees.platform_fee),
        "net_amount": float(fees.net_amount),
        "message": message,
        "is_anonymous": is_anonymous,
        "payment_method": "credit_card",
        "card_last_four": _last_four(card_number),
        "status": "completed",
        "transaction_id": _transaction_id(),
    })

    await backend.update_current_user({
        "total_donated": float(user.total_donated + fees.amount),
    })
    await backend.update(entities.NONPROFIT, nonprofit.id, {
        "total_donations_received": float(nonprofit.total_donations_received + fees.net_amount),
    })
    return Donation.from_dict(created), fees


async def start_recurring_donation(backend, user: User, nonprofit: Nonprofit, amount,
                                   frequency: Union[Frequency, str],
                                   card_number: Optional[str] = None,
                                   now: Optional[datetime] = None) -> RecurringDonation:
    frequency = Frequency(frequency)
    gross = coerce_amount(amount)
    if gross <= 0:
        raise ValueError("Donation amount must be greater than zero")

    next_date = next_donation_date(frequency, now or datetime.now(timezone.utc))
    created = await backend.create(entities.RECURRING_DONATION, {
        "donor_id": user.id,
        "nonprofit_id": nonprofit.id,
        "amount": float(gross),
        "frequency": frequency.value,
        "next_donation_date": next_date.isoformat(),
        "card_last_four": _last_four(card_number),
        "status": RecurringStatus.ACTIVE.value,
    })
    return RecurringDonation.from_dict(created)


async def recurring_donations(backend, user: User) -> list[RecurringDonation]:
    rows = await backend.filter(entities.RECURRING_DONATION, {"donor_id": user.id})
    return upcoming(_parse(RecurringDonation, rows))


async def change_recurring_status(backend, pledge_id: str,
                                  status: Union[RecurringStatus, str]) -> RecurringDonation:
    """Ask the backend to move a pledge to `status`.

    Whether the transition is valid is decided by the backend; a rejection
    comes back as ActionFailed.
    """
    status = RecurringStatus(status)
    updated = await backend.update(entities.RECURRING_DONATION, pledge_id, {"status": status.value})
    return RecurringDonation.from_dict(updated)


async def apply_to_opportunity(backend, user: User, opportunity: Opportunity,
                               message: str = "", skills: Union[str, list, None] = None,
                               availability: Optional[str] = None,
                               contact_phone: Optional[str] = None) -> VolunteerApplication:
    if isinstance(skills, str):
        skills = [s.strip() for s in skills.split(",") if s.strip()]

    created = await backend.create(entities.VOLUNTEER_APPLICATION, {
        "volunteer_id": user.id,
        "opportunity_id": opportunity.id,
        "nonprofit_id": opportunity.nonprofit_id,
        "application_message": message,
        "relevant_skills": list(skills or []),
        "availability": availability,
        "contact_phone": contact_phone,
        "status": "pending",
    })
    await backend.update(entities.OPPORTUNITY, opportunity.id, {
        "volunteers_signed_up": opportunity.volunteers_signed_up + 1,
    })
    return VolunteerApplication.from_dict(created)


async def submit_review(backend, user: User, nonprofit_id: str, rating,
                        comment: str = "") -> Review:
    """Leave a review. A second review of the same nonprofit fails with ActionFailed."""
    if not rating:
        raise ValueError("Please select a rating")
    created = await backend.create(entities.REVIEW, {
        "reviewer_id": user.id,
        "nonprofit_id": nonprofit_id,
        "rating": clamp_rating(rating),
        "comment": comment,
    })
    return Review.from_dict(created)


async def toggle_favorite(backend, user: User, nonprofit_id: str) -> list[str]:
    """Add or remove a nonprofit from favorites; returns the new list."""
    current = list(user.favorite_nonprofits)
    if nonprofit_id in current:
        updated = [i for i in current if i != nonprofit_id]
    else:
        updated = current + [nonprofit_id]
    await backend.update_current_user({"favorite_nonprofits": updated})
    return updated


async def send_message(backend, user: User, nonprofit: Nonprofit, content: str,
                       conversation_id: Optional[str] = None) -> Message:
    if not content or not content.strip():
        raise ValueError("Message is empty")
    created = await backend.create(entities.MESSAGE, {
        "sender_id": user.id,
        "recipient_id": recipient_for(nonprofit),
        "nonprofit_id": nonprofit.id,
        "content": content,
        "conversation_id": conversation_id or conversation_id_for(user.id, nonprofit.id),
    })
    return Message.from_dict(created)


async def load_conversations(backend, user: User,
                             start_with: Optional[str] = None) -> list[Conversation]:
    nonprofits, messages = await asyncio.gather(
        backend.list(entities.NONPROFIT),
        backend.list(entities.MESSAGE),
    )
    by_id = {org.id: org for org in _parse(Nonprofit, nonprofits)}
    return build_conversations(_parse(Message, messages), user.id, by_id, start_with=start_with)

