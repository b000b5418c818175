"""
karma - Recommendations, donation fees and impact tracking for the Karma
giving platform.

The scoring functions are pure and work on record snapshots; the services
module fetches those snapshots from the hosted backend and feeds them in.
"""

from .models import (
    Donation,
    Location,
    Message,
    Nonprofit,
    Opportunity,
    RatedNonprofit,
    RecurringDonation,
    Review,
    User,
    VolunteerApplication,
)
from .geo import haversine_miles
from .fees import FeeBreakdown, split_donation
from .recommend import InterestProfile, recommend_nonprofits, recommend_opportunities
from .achievements import ImpactStats, evaluate_achievements
from .backend import ActionFailed, BackendClient, KarmaError

__version__ = "0.1.0"
__all__ = [
    "Donation",
    "Location",
    "Message",
    "Nonprofit",
    "Opportunity",
    "RatedNonprofit",
    "RecurringDonation",
    "Review",
    "User",
    "VolunteerApplication",
    "haversine_miles",
    "FeeBreakdown",
    "split_donation",
    "InterestProfile",
    "recommend_nonprofits",
    "recommend_opportunities",
    "ImpactStats",
    "evaluate_achievements",
    "ActionFailed",
    "BackendClient",
    "KarmaError",
]
