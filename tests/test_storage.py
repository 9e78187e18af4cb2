"""
Contract tests run against both storage backends
"""
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from ecolens.db.database import make_engine
from ecolens.exceptions import InsufficientCoinsError, NotFoundError, ValidationFailedError
from ecolens.schemas.schemas import (
    DetectedObject,
    DetectionCreate,
    GoalTarget,
    GoalType,
    HabitEntryCreate,
    PersonalGoalCreate,
    ReminderCreate,
    TransactionCreate,
    TransactionType,
    UserCreate,
    VerificationStatus,
)
from ecolens.storage.database import DatabaseStorage
from ecolens.storage.memory import MemStorage


@pytest.fixture(params=["memory", "database"])
def store(request):
    if request.param == "memory":
        return MemStorage()
    return DatabaseStorage(session_factory=sessionmaker(bind=make_engine("sqlite://")))


@pytest.fixture
def user(store):
    return store.create_user(UserCreate(username="alice", email="alice@example.com"))


def _detection(user_id, name="glass jar", **fields):
    return DetectionCreate(
        user_id=user_id,
        detected_objects=[DetectedObject(name=name, confidence=88, bin_type="recyclable", coins_reward=12)],
        confidence_score=88,
        coins_earned=12,
        **fields
    )


def _earn(user_id, amount, **fields):
    return TransactionCreate(user_id=user_id, type=TransactionType.earn, amount=amount,
                             description="Detected glass jar", **fields)


def _spend(user_id, amount):
    return TransactionCreate(user_id=user_id, type=TransactionType.spend, amount=amount,
                             description="QR code redeemed")


class TestUsers:

    def test_new_user_starts_empty(self, store, user):
        assert (user.green_coins, user.total_earned) == (0, 0)
        assert store.get_user_by_username("alice").id == user.id
        assert store.get_user_stats(user.id).total_detections == 0
        assert store.get_environmental_impact(user.id).total_co2_saved == 0

    def test_duplicate_username_is_rejected(self, store, user):
        with pytest.raises(ValidationFailedError):
            store.create_user(UserCreate(username="alice", email="other@example.com"))

    def test_update_unknown_user(self, store):
        with pytest.raises(NotFoundError):
            store.update_user(999, username="ghost")

    def test_update_profile(self, store, user):
        updated = store.update_user(user.id, username="alice2", email="a2@example.com")
        assert (updated.username, updated.email) == ("alice2", "a2@example.com")


class TestCoins:

    def test_positive_delta_raises_total_earned(self, store, user):
        store.update_user_coins(user.id, 30)
        after = store.update_user_coins(user.id, -10)
        assert (after.green_coins, after.total_earned) == (20, 30)

    def test_balance_never_goes_negative(self, store, user):
        store.update_user_coins(user.id, 5)
        with pytest.raises(InsufficientCoinsError):
            store.update_user_coins(user.id, -6)
        assert store.get_user_by_id(user.id).green_coins == 5

    def test_earn_and_spend_transactions_move_balance(self, store, user):
        earned = store.record_coin_transaction(_earn(user.id, 15, metadata={"match_score": 92}))
        store.record_coin_transaction(_spend(user.id, 10))

        assert store.get_user_by_id(user.id).green_coins == 5
        assert earned.metadata == {"match_score": 92}
        history = store.get_user_transactions(user.id)
        assert [t.type for t in history] == [TransactionType.spend, TransactionType.earn]

    def test_failed_spend_writes_nothing(self, store, user):
        store.record_coin_transaction(_earn(user.id, 8))
        with pytest.raises(InsufficientCoinsError):
            store.record_coin_transaction(_spend(user.id, 9))

        assert store.get_user_by_id(user.id).green_coins == 8
        assert len(store.get_user_transactions(user.id)) == 1

    def test_create_transaction_leaves_balance_alone(self, store, user):
        store.create_transaction(_earn(user.id, 50))
        assert store.get_user_by_id(user.id).green_coins == 0

    def test_unknown_user(self, store):
        with pytest.raises(NotFoundError):
            store.record_coin_transaction(_earn(404, 1))


class TestDetections:

    def test_round_trip(self, store, user):
        created = store.create_detection(_detection(user.id, image_hash="h1"))
        fetched = store.get_detection(created.id)
        assert fetched.detected_objects[0].name == "glass jar"
        assert fetched.verification_status == VerificationStatus.pending
        assert store.get_detection_by_image_hash("h1").id == created.id
        assert store.get_detection_by_image_hash("missing") is None

    def test_history_is_newest_first(self, store, user):
        now = datetime.utcnow()
        ids = []
        for minutes in (30, 10, 20):
            d = store.create_detection(_detection(user.id))
            store.update_detection(d.id, created_at=now - timedelta(minutes=minutes))
            ids.append(d.id)

        assert [d.id for d in store.get_user_detections(user.id)] == [ids[1], ids[2], ids[0]]
        assert [d.id for d in store.get_user_detections(user.id, limit=1)] == [ids[1]]
        recent = store.get_recent_detections(user.id, now - timedelta(minutes=25))
        assert [d.id for d in recent] == [ids[1], ids[2]]

    def test_same_item_and_client_queries(self, store, user):
        since = datetime.utcnow() - timedelta(minutes=10)
        store.create_detection(_detection(user.id, name="Glass Jar", user_agent="phone"))
        store.create_detection(_detection(user.id, name="tin can", user_agent="phone"))
        store.create_detection(_detection(user.id, name="glass jar", user_agent="laptop"))

        assert len(store.get_recent_same_item_detections(user.id, "glass jar", since)) == 2
        assert len(store.get_recent_detections_by_user_agent(user.id, "phone", since)) == 2

    def test_update_status(self, store, user):
        created = store.create_detection(_detection(user.id))
        updated = store.update_detection(
            created.id, verification_status=VerificationStatus.rejected, verification_attempts=3
        )
        assert updated.verification_status == VerificationStatus.rejected
        assert updated.verification_attempts == 3

    def test_update_missing_detection(self, store):
        with pytest.raises(NotFoundError):
            store.update_detection(12345, is_verified=True)

    def test_settle_only_changes_pending_detections(self, store, user):
        created = store.create_detection(_detection(user.id))
        settled = store.settle_detection(
            created.id, verification_status=VerificationStatus.verified, is_verified=True, verification_attempts=1
        )
        assert settled.verification_status == VerificationStatus.verified
        assert settled.verification_attempts == 1

        again = store.settle_detection(
            created.id, verification_status=VerificationStatus.rejected, verification_attempts=2
        )
        assert again is None
        current = store.get_detection(created.id)
        assert current.verification_status == VerificationStatus.verified
        assert current.verification_attempts == 1

    def test_settle_missing_detection(self, store):
        with pytest.raises(NotFoundError):
            store.settle_detection(12345, is_verified=True)


class TestStatsAndAchievements:

    def test_increment_and_set(self, store, user):
        store.increment_user_stats(user.id, total_detections=1, glass_items_detected=1)
        stats = store.increment_user_stats(user.id, total_detections=1)
        assert (stats.total_detections, stats.glass_items_detected) == (2, 1)

        stats = store.update_user_stats(user.id, favorite_material="glass", streak_days=4)
        assert (stats.favorite_material, stats.streak_days) == ("glass", 4)

    def test_admin_listings(self, store, user):
        store.create_user(UserCreate(username="bob", email="bob@example.com"))
        assert [u.username for u in store.get_all_users()] == ["alice", "bob"]
        assert len(store.get_all_stats()) == 2


class TestAnalyticsTables:

    def test_goal_lifecycle(self, store, user):
        goal = store.create_goal(user.id, PersonalGoalCreate(
            goal_type=GoalType.weekly, target_type=GoalTarget.detections,
            target_value=5, title="Five a week"
        ))
        assert goal.goal_type == GoalType.weekly
        assert store.update_goal_progress(goal.id, 3).current_progress == 3

        completed = store.complete_goal(goal.id)
        assert not completed.is_active
        assert completed.completed_at is not None
        assert [g.id for g in store.get_user_goals(user.id)] == [goal.id]

    def test_complete_missing_goal(self, store):
        with pytest.raises(NotFoundError):
            store.complete_goal(77)

    def test_impact_upsert_creates_missing_row(self, store, user):
        other = 987
        assert store.get_environmental_impact(other) is None
        impact = store.update_environmental_impact(other, total_co2_saved=2.5)
        assert (impact.user_id, impact.total_co2_saved) == (other, 2.5)

        impact = store.update_environmental_impact(user.id, recycling_score=40)
        assert impact.recycling_score == 40
        assert impact.last_updated is not None

    def test_only_active_reminders_are_listed(self, store, user):
        active = store.create_reminder(user.id, ReminderCreate(
            reminder_type="daily", title="Recycle", message="Sort today's waste", schedule_time="18:30"
        ))
        store.create_reminder(user.id, ReminderCreate(
            reminder_type="weekly", title="Old", message="Paused", is_active=False
        ))
        assert [r.id for r in store.get_user_reminders(user.id)] == [active.id]

        moved = store.update_reminder_schedule(active.id, datetime(2026, 5, 1, 18, 30))
        assert moved.next_scheduled == datetime(2026, 5, 1, 18, 30)

    def test_daily_habit_upsert(self, store, user):
        day = date(2026, 3, 4)
        store.upsert_daily_habit(user.id, day, coins=8, item_type="paper", favorite_time="morning")
        row = store.upsert_daily_habit(user.id, day, coins=12, item_type="paper")

        assert (row.detections_count, row.coins_earned) == (2, 20)
        assert row.item_types == {"paper": 2}
        assert row.favorite_time == "morning"
        assert len(store.get_user_habit_data(user.id)) == 1

    def test_daily_habit_upsert_finds_entry_logged_mid_day(self, store, user):
        store.create_habit_entry(user.id, HabitEntryCreate(
            date=datetime(2026, 3, 4, 12, 0), detections_count=2, coins_earned=10
        ))
        row = store.upsert_daily_habit(user.id, date(2026, 3, 4), coins=5)

        assert (row.detections_count, row.coins_earned) == (3, 15)
        assert len(store.get_user_habit_data(user.id)) == 1

    def test_habit_range_filter(self, store, user):
        for day in (1, 5, 9):
            store.create_habit_entry(user.id, HabitEntryCreate(
                date=datetime(2026, 3, day), detections_count=day
            ))
        rows = store.get_user_habit_data(user.id, datetime(2026, 3, 2), datetime(2026, 3, 9))
        assert [r.detections_count for r in rows] == [9, 5]
