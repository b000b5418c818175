"""Data models for the karma package."""

from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

CATEGORIES = (
    "education",
    "environment",
    "health",
    "poverty",
    "animals",
    "arts_culture",
    "community_development",
    "human_rights",
    "disaster_relief",
    "elderly_care",
    "youth_development",
    "other",
)

MIN_RATING = 1
MAX_RATING = 5


class Frequency(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class RecurringStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"


def parse_datetime(value) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from the backend.

    Naive timestamps are taken to be UTC. Unparseable values become None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_decimal(value, default: Decimal = Decimal("0")) -> Decimal:
    if value is None or isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default
    return result if result.is_finite() else default


def parse_float(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_int(value, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def clamp_rating(value) -> int:
    """Clamp a review rating into the 1-5 star range."""
    rating = parse_int(value, MIN_RATING)
    return max(MIN_RATING, min(MAX_RATING, rating))


def _serialize(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    return value


@dataclass(frozen=True)
class Location:
    """A geographic point with optional place names."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city: Optional[str] = None
    state: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["Location"]:
        if not data:
            return None
        return cls(
            latitude=parse_float(data.get("latitude")),
            longitude=parse_float(data.get("longitude")),
            city=data.get("city"),
            state=data.get("state"),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)


@dataclass
class User:
    """The signed-in user as returned by the auth collaborator."""
    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    location: Optional[Location] = None
    preferred_categories: list[str] = field(default_factory=list)
    favorite_nonprofits: list[str] = field(default_factory=list)
    total_donated: Decimal = Decimal("0")
    total_volunteer_hours: float = 0.0

    @property
    def first_name(self) -> str:
        if not self.full_name:
            return "User"
        return self.full_name.split(" ")[0]

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        return cls(
            id=str(data["id"]),
            full_name=data.get("full_name"),
            email=data.get("email"),
            location=Location.from_dict(data.get("location")),
            preferred_categories=list(data.get("preferred_categories") or []),
            favorite_nonprofits=[str(i) for i in data.get("favorite_nonprofits") or []],
            total_donated=parse_decimal(data.get("total_donated")),
            total_volunteer_hours=parse_float(data.get("total_volunteer_hours")) or 0.0,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return _serialize(asdict(self))


@dataclass
class Nonprofit:
    """An organization that receives donations and posts opportunities."""
    id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    location: Optional[Location] = None
    total_donations_received: Decimal = Decimal("0")
    volunteers_count: int = 0
    admin_user_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Nonprofit":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            description=data.get("description"),
            category=data.get("category"),
            location=Location.from_dict(data.get("location")),
            total_donations_received=parse_decimal(data.get("total_donations_received")),
            volunteers_count=parse_int(data.get("volunteers_count")),
            admin_user_id=data.get("admin_user_id"),
            created_at=parse_datetime(data.get("created_date")),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return _serialize(asdict(self))


@dataclass
class Opportunity:
    """A volunteering slot posted by a nonprofit."""
    id: str
    nonprofit_id: str
    title: str = ""
    description: Optional[str] = None
    category: Optional[str] = None
    location: Optional[Location] = None
    volunteers_needed: int = 0
    volunteers_signed_up: int = 0
    is_active: bool = True
    created_at: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @property
    def spots_available(self) -> int:
        return max(self.volunteers_needed - self.volunteers_signed_up, 0)

    @classmethod
    def from_dict(cls, data: dict) -> "Opportunity":
        return cls(
            id=str(data["id"]),
            nonprofit_id=str(data.get("nonprofit_id") or ""),
            title=data.get("title") or "",
            description=data.get("description"),
            category=data.get("category"),
            location=Location.from_dict(data.get("location")),
            volunteers_needed=parse_int(data.get("volunteers_needed")),
            volunteers_signed_up=parse_int(data.get("volunteers_signed_up")),
            is_active=bool(data.get("is_active", True)),
            created_at=parse_datetime(data.get("created_date")),
            end_date=parse_datetime(data.get("end_date")),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return _serialize(asdict(self))


@dataclass
class Donation:
    """A completed one-off donation."""
    donor_id: str
    nonprofit_id: str
    amount: Decimal
    platform_fee: Decimal = Decimal("0")
    net_amount: Decimal = Decimal("0")
    id: Optional[str] = None
    category: Optional[str] = None
    message: Optional[str] = None
    is_anonymous: bool = False
    payment_method: Optional[str] = None
    card_last_four: Optional[str] = None
    status: Optional[str] = None
    transaction_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Donation":
        amount = parse_decimal(data.get("amount"))
        return cls(
            id=data.get("id"),
            donor_id=str(data.get("donor_id") or ""),
            nonprofit_id=str(data.get("nonprofit_id") or ""),
            amount=max(amount, Decimal("0")),
            platform_fee=parse_decimal(data.get("platform_fee")),
            net_amount=parse_decimal(data.get("net_amount")),
            category=data.get("category"),
            message=data.get("message"),
            is_anonymous=bool(data.get("is_anonymous", False)),
            payment_method=data.get("payment_method"),
            card_last_four=data.get("card_last_four"),
            status=data.get("status"),
            transaction_id=data.get("transaction_id"),
            created_at=parse_datetime(data.get("created_date")),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return _serialize(asdict(self))


@dataclass
class Review:
    """A star rating left by a user for a nonprofit."""
    reviewer_id: str
    nonprofit_id: str
    rating: int
    id: Optional[str] = None
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Review":
        return cls(
            id=data.get("id"),
            reviewer_id=str(data.get("reviewer_id") or ""),
            nonprofit_id=str(data.get("nonprofit_id") or ""),
            rating=clamp_rating(data.get("rating")),
            comment=data.get("comment"),
            created_at=parse_datetime(data.get("created_date")),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return _serialize(asdict(self))


@dataclass
class RecurringDonation:
    """A scheduled repeating pledge."""
    donor_id: str
    nonprofit_id: str
    amount: Decimal
    frequency: Frequency
    status: RecurringStatus = RecurringStatus.ACTIVE
    id: Optional[str] = None
    next_donation_date: Optional[datetime] = None
    card_last_four: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "RecurringDonation":
        return cls(
            id=data.get("id"),
            donor_id=str(data.get("donor_id") or ""),
            nonprofit_id=str(data.get("nonprofit_id") or ""),
            amount=parse_decimal(data.get("amount")),
            frequency=Frequency(data.get("frequency") or Frequency.MONTHLY.value),
            status=RecurringStatus(data.get("status") or RecurringStatus.ACTIVE.value),
            next_donation_date=parse_datetime(data.get("next_donation_date")),
            card_last_four=data.get("card_last_four"),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return _serialize(asdict(self))


@dataclass
class VolunteerApplication:
    """A user's application to an opportunity."""
    volunteer_id: str
    opportunity_id: str
    nonprofit_id: str
    application_message: str = ""
    relevant_skills: list[str] = field(default_factory=list)
    availability: Optional[str] = None
    contact_phone: Optional[str] = None
    status: str = "pending"
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "VolunteerApplication":
        return cls(
            id=data.get("id"),
            volunteer_id=str(data.get("volunteer_id") or ""),
            opportunity_id=str(data.get("opportunity_id") or ""),
            nonprofit_id=str(data.get("nonprofit_id") or ""),
            application_message=data.get("application_message") or "",
            relevant_skills=list(data.get("relevant_skills") or []),
            availability=data.get("availability"),
            contact_phone=data.get("contact_phone"),
            status=data.get("status") or "pending",
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return _serialize(asdict(self))


@dataclass
class Message:
    """A message between a user and a nonprofit."""
    sender_id: str
    recipient_id: str
    nonprofit_id: str
    conversation_id: str
    content: str
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        return cls(
            id=data.get("id"),
            sender_id=str(data.get("sender_id") or ""),
            recipient_id=str(data.get("recipient_id") or ""),
            nonprofit_id=str(data.get("nonprofit_id") or ""),
            conversation_id=str(data.get("conversation_id") or ""),
            content=data.get("content") or "",
            created_at=parse_datetime(data.get("created_date")),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return _serialize(asdict(self))


@dataclass
class RatedNonprofit:
    """A nonprofit annotated with its review statistics."""
    nonprofit: Nonprofit
    avg_rating: Optional[float] = None
    reviews_count: int = 0

    @property
    def id(self) -> str:
        return self.nonprofit.id

    @property
    def name(self) -> str:
        return self.nonprofit.name
