"""Tests for the backend-facing services, run against an in-memory backend."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from karma import services
from karma.backend import ActionFailed
from karma.models import Frequency, Location, Nonprofit, Opportunity, RecurringStatus, User

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def iso(days_ago):
    return (NOW - timedelta(days=days_ago)).isoformat()


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def user():
    return User(id="u1", full_name="Sam Rivera", preferred_categories=["health"],
                location=Location(latitude=40.0, longitude=-75.0),
                total_donated=Decimal("40"), total_volunteer_hours=6)


@pytest.fixture
def seeded(backend):
    backend.seed("Nonprofit",
                 {"id": "health", "name": "Health Org", "category": "health", "created_date": iso(5),
                  "total_donations_received": 100},
                 {"id": "edu", "name": "Edu Org", "category": "education", "created_date": iso(1000)},
                 {"id": "fav", "name": "Favorite Org", "category": "health", "created_date": iso(3)})
    reviews = [{"id": f"r-h{i}", "reviewer_id": f"x{i}", "nonprofit_id": "health",
                "rating": 5 if i < 6 else 4} for i in range(12)]
    reviews += [{"id": f"r-e{i}", "reviewer_id": f"x{i}", "nonprofit_id": "edu", "rating": 5}
                for i in range(50)]
    backend.seed("Review", *reviews)
    return backend


class TestRecommendedNonprofits:
    def test_scenario(self, seeded, user):
        user.favorite_nonprofits = ["fav"]
        result = run(services.recommended_nonprofits(seeded, user, now=NOW))
        assert [r.nonprofit.id for r in result] == ["health", "edu"]
        assert [r.score for r in result] == [23, 11]

    def test_fetches_fan_out(self, seeded, user):
        run(services.recommended_nonprofits(seeded, user, now=NOW))
        assert ("filter", "Donation", {"donor_id": "u1"}) in seeded.calls
        assert ("filter", "Review", {"reviewer_id": "u1"}) in seeded.calls
        assert ("list", "Nonprofit", None, None) in seeded.calls

    def test_anonymous_user(self, seeded):
        result = run(services.recommended_nonprofits(seeded, None, limit=5, now=NOW))
        assert {r.nonprofit.id for r in result} == {"health", "edu", "fav"}
        assert not [c for c in seeded.calls if c[0] == "filter"]

    def test_donation_history_excludes_and_adds_category(self, seeded, user):
        user.preferred_categories = []
        seeded.seed("Donation", {"id": "d1", "donor_id": "u1", "nonprofit_id": "fav",
                                 "amount": 10, "category": "health"})
        result = run(services.recommended_nonprofits(seeded, user, now=NOW))
        assert "fav" not in [r.nonprofit.id for r in result]
        assert result[0].nonprofit.id == "health"
        assert result[0].score == 23

    def test_empty_backend(self, backend, user):
        assert run(services.recommended_nonprofits(backend, user, now=NOW)) == []

    def test_malformed_rows_skipped(self, backend, user):
        backend.seed("Nonprofit", {"name": "no id"}, {"id": "ok", "name": "OK"})
        result = run(services.recommended_nonprofits(backend, user, now=NOW))
        assert [r.nonprofit.id for r in result] == ["ok"]


class TestRecommendedOpportunities:
    def test_ranking(self, backend, user):
        backend.seed("Donation", {"id": "d1", "donor_id": "u1", "nonprofit_id": "np1", "amount": 5})
        backend.seed("Opportunity",
                     {"id": "supported", "nonprofit_id": "np1", "is_active": True,
                      "volunteers_needed": 10, "created_date": iso(9)},
                     {"id": "health", "nonprofit_id": "np2", "category": "health", "is_active": True,
                      "volunteers_needed": 10, "created_date": iso(1)},
                     {"id": "urgent", "nonprofit_id": "np3", "is_active": True,
                      "volunteers_needed": 3, "volunteers_signed_up": 1, "created_date": iso(2)},
                     {"id": "inactive", "nonprofit_id": "np1", "category": "health", "is_active": False})
        result = run(services.recommended_opportunities(backend, user))
        assert [r.opportunity.id for r in result] == ["supported", "health", "urgent"]
        assert [r.score for r in result] == [15, 10, 5]


class TestDisasterAlerts:
    def test_nearest_two_within_radius(self, backend, user):
        backend.seed("Opportunity",
                     {"id": "close", "nonprofit_id": "n", "category": "disaster_relief", "is_active": True,
                      "location": {"latitude": 40.1, "longitude": -75.0}},
                     {"id": "closer", "nonprofit_id": "n", "category": "disaster_relief", "is_active": True,
                      "location": {"latitude": 40.01, "longitude": -75.0}},
                     {"id": "mid", "nonprofit_id": "n", "category": "disaster_relief", "is_active": True,
                      "location": {"latitude": 41.0, "longitude": -75.0}},
                     {"id": "far", "nonprofit_id": "n", "category": "disaster_relief", "is_active": True,
                      "location": {"latitude": 45.0, "longitude": -75.0}},
                     {"id": "other", "nonprofit_id": "n", "category": "health", "is_active": True,
                      "location": {"latitude": 40.0, "longitude": -75.0}})
        alerts = run(services.disaster_alerts(backend, user))
        assert [o.id for o, _ in alerts] == ["closer", "close"]

    def test_no_location(self, backend):
        assert run(services.disaster_alerts(backend, User(id="u1"))) == []


class TestImpact:
    def test_stats_and_achievements(self, backend, user):
        backend.seed("Donation",
                     {"id": "d1", "donor_id": "u1", "nonprofit_id": "a", "amount": 30},
                     {"id": "d2", "donor_id": "u1", "nonprofit_id": "b", "amount": 20},
                     {"id": "d3", "donor_id": "u2", "nonprofit_id": "b", "amount": 999})
        backend.seed("Review", {"id": "r1", "reviewer_id": "u1", "nonprofit_id": "a", "rating": 4})

        stats = run(services.impact_stats(backend, user))
        assert stats.total_donated == 50
        assert stats.total_volunteer_hours == 6
        assert stats.total_reviews == 1

        results = {r.achievement.id: r for r in run(services.user_achievements(backend, user))}
        assert results["helper"].completed
        assert results["generous_giver"].progress == pytest.approx(50)
        assert results["volunteer_starter"].completed

    def test_dashboard(self, backend, user):
        backend.seed("Nonprofit", {"id": "a", "name": "A"}, {"id": "b", "name": "B"})
        backend.seed("Opportunity", {"id": "o1", "nonprofit_id": "a", "is_active": True},
                     {"id": "o2", "nonprofit_id": "a", "is_active": False})
        backend.seed("Donation",
                     {"id": "d1", "donor_id": "u1", "nonprofit_id": "a", "amount": 12.5},
                     {"id": "d2", "donor_id": "u2", "nonprofit_id": "a", "amount": 7})
        stats = run(services.dashboard_stats(backend, user))
        assert stats.total_nonprofits == 2
        assert stats.total_opportunities == 1
        assert stats.total_donations == 2
        assert stats.my_donations == Decimal("12.5")
        assert stats.my_volunteer_hours == 6


class TestDirectories:
    def test_nonprofit_directory(self, seeded, user):
        listings = run(services.nonprofit_directory(seeded, user, sort_by="recommended"))
        assert [x.nonprofit.id for x in listings] == ["health", "fav", "edu"]

    def test_radius_ignored_without_origin(self, seeded, user):
        listings = run(services.nonprofit_directory(seeded, user, max_miles=5))
        assert len(listings) == 3

    def test_opportunity_directory(self, backend, user):
        backend.seed("Opportunity",
                     {"id": "o1", "nonprofit_id": "a", "title": "Tutor", "category": "education",
                      "is_active": True, "created_date": iso(1)},
                     {"id": "o2", "nonprofit_id": "a", "title": "Nurse aide", "category": "health",
                      "is_active": True, "created_date": iso(5)})
        listings = run(services.opportunity_directory(backend, user))
        assert [x.opportunity.id for x in listings] == ["o2", "o1"]

    def test_recent_nonprofits(self, seeded):
        recent = run(services.recent_nonprofits(seeded, limit=2))
        assert [n.id for n in recent] == ["fav", "health"]
        assert ("list", "Nonprofit", "-created_date", 2) in seeded.calls


class TestDonate:
    def test_records_donation_and_totals(self, backend, user):
        backend.user = user.to_dict()
        backend.seed("Nonprofit", {"id": "np1", "name": "Food Bank", "category": "poverty",
                                   "total_donations_received": 100})
        org = Nonprofit(id="np1", name="Food Bank", category="poverty",
                        total_donations_received=Decimal("100"))

        donation, fees = run(services.donate(backend, user, org, "100", card_number="4242 4242 4242 4242"))

        assert fees.platform_fee == Decimal("1.00")
        assert donation.amount == Decimal("100")
        assert donation.net_amount == Decimal("99")
        assert donation.category == "poverty"
        assert donation.card_last_four == "4242"
        assert donation.transaction_id.startswith("demo_txn_")
        assert backend.user["total_donated"] == 140.0
        assert backend.records["Nonprofit"][0]["total_donations_received"] == 199.0

    def test_zero_amount_rejected(self, backend, user):
        with pytest.raises(ValueError):
            run(services.donate(backend, user, Nonprofit(id="np1", name="X"), "abc"))
        assert "Donation" not in backend.records

    def test_write_failure(self, backend, user):
        backend.fail_writes = True
        with pytest.raises(ActionFailed):
            run(services.donate(backend, user, Nonprofit(id="np1", name="X"), 10))


class TestRecurring:
    def test_start(self, backend, user):
        pledge = run(services.start_recurring_donation(
            backend, user, Nonprofit(id="np1", name="X"), 25, "weekly", now=NOW))
        assert pledge.status is RecurringStatus.ACTIVE
        assert pledge.frequency is Frequency.WEEKLY
        assert pledge.next_donation_date == NOW + timedelta(days=7)

    def test_bad_frequency(self, backend, user):
        with pytest.raises(ValueError):
            run(services.start_recurring_donation(backend, user, Nonprofit(id="np1", name="X"), 25, "daily"))

    def test_change_status_and_list(self, backend, user):
        backend.seed("RecurringDonation",
                     {"id": "r1", "donor_id": "u1", "nonprofit_id": "a", "amount": 5,
                      "frequency": "monthly", "status": "active", "next_donation_date": iso(-20)},
                     {"id": "r2", "donor_id": "u1", "nonprofit_id": "b", "amount": 5,
                      "frequency": "weekly", "status": "active", "next_donation_date": iso(-3)})
        updated = run(services.change_recurring_status(backend, "r1", "paused"))
        assert updated.status is RecurringStatus.PAUSED

        pledges = run(services.recurring_donations(backend, user))
        assert [p.id for p in pledges] == ["r2", "r1"]

    def test_unreadable_pledge_is_skipped_and_logged(self, backend, user, caplog):
        backend.seed("RecurringDonation",
                     {"id": "r1", "donor_id": "u1", "nonprofit_id": "a", "amount": 5,
                      "frequency": "monthly", "status": "active"},
                     {"id": "r-odd", "donor_id": "u1", "nonprofit_id": "b", "amount": 5,
                      "frequency": "monthly", "status": "on_hold"})
        pledges = run(services.recurring_donations(backend, user))
        assert [p.id for p in pledges] == ["r1"]
        assert "r-odd" in caplog.text

    def test_change_status_unknown_pledge(self, backend):
        with pytest.raises(ActionFailed):
            run(services.change_recurring_status(backend, "missing", RecurringStatus.CANCELLED))


class TestVolunteering:
    def test_apply_increments_signups(self, backend, user):
        backend.seed("Opportunity", {"id": "o1", "nonprofit_id": "np1", "volunteers_needed": 5,
                                     "volunteers_signed_up": 2})
        opp = Opportunity(id="o1", nonprofit_id="np1", volunteers_needed=5, volunteers_signed_up=2)

        application = run(services.apply_to_opportunity(
            backend, user, opp, message="Happy to help", skills="first aid, driving, "))

        assert application.status == "pending"
        assert application.relevant_skills == ["first aid", "driving"]
        assert backend.records["Opportunity"][0]["volunteers_signed_up"] == 3


class TestReviews:
    def test_submit_clamps_rating(self, backend, user):
        review = run(services.submit_review(backend, user, "np1", 9, "Great"))
        assert review.rating == 5

    def test_duplicate_fails(self, backend, user):
        run(services.submit_review(backend, user, "np1", 4))
        with pytest.raises(ActionFailed):
            run(services.submit_review(backend, user, "np1", 3))

    def test_missing_rating(self, backend, user):
        with pytest.raises(ValueError):
            run(services.submit_review(backend, user, "np1", 0))


class TestFavoritesAndMessages:
    def test_toggle_favorite(self, backend, user):
        backend.user = user.to_dict()
        assert run(services.toggle_favorite(backend, user, "np1")) == ["np1"]
        user.favorite_nonprofits = ["np1", "np2"]
        assert run(services.toggle_favorite(backend, user, "np1")) == ["np2"]
        assert backend.user["favorite_nonprofits"] == ["np2"]

    def test_send_and_load(self, backend, user):
        backend.seed("Nonprofit", {"id": "np1", "name": "Food Bank", "admin_user_id": "admin-1"})
        org = Nonprofit(id="np1", name="Food Bank", admin_user_id="admin-1")

        sent = run(services.send_message(backend, user, org, "Hello!"))
        assert sent.recipient_id == "admin-1"
        assert sent.conversation_id == "conv_u1_np1"

        convos = run(services.load_conversations(backend, user))
        assert len(convos) == 1
        assert convos[0].nonprofit.name == "Food Bank"
        assert convos[0].last_message.content == "Hello!"

    def test_empty_message(self, backend, user):
        with pytest.raises(ValueError):
            run(services.send_message(backend, user, Nonprofit(id="np1", name="X"), "   "))


class TestCurrentUser:
    def test_signed_in(self, backend, user):
        backend.user = {"id": "u1", "full_name": "Sam Rivera"}
        assert run(services.get_current_user(backend)).first_name == "Sam"

    def test_signed_out(self, backend):
        assert run(services.get_current_user(backend)) is None
