"""
Storage contract shared by the in-memory and SQLAlchemy backends.

All methods are synchronous and return Pydantic records, never ORM rows.
Coin balances change only through ``update_user_coins`` and
``record_coin_transaction``.
"""
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, List, Optional

from ecolens.schemas.schemas import (
    Achievement,
    AchievementCreate,
    Detection,
    DetectionCreate,
    EnvironmentalImpact,
    HabitAnalytics,
    HabitEntryCreate,
    PersonalGoal,
    PersonalGoalCreate,
    ReminderCreate,
    Stats,
    Transaction,
    TransactionCreate,
    TransactionType,
    User,
    UserCreate,
    UserReminder,
)


IMPACT_FIELDS = (
    "total_co2_saved",
    "total_water_saved",
    "total_energy_saved",
    "trees_saved",
    "landfill_diverted",
    "recycling_score",
)


def coin_delta(data: TransactionCreate) -> int:
    """Signed balance change for a transaction; spends debit the balance"""
    return data.amount if data.type == TransactionType.earn else -data.amount


def matches_item(detection: Detection, item_name: str) -> bool:
    wanted = item_name.strip().lower()
    return any(obj.name.strip().lower() == wanted for obj in detection.detected_objects)


def newest_first(records: List[Any], field: str = "created_at") -> List[Any]:
    """Sort by timestamp descending, ties broken by id descending"""
    return sorted(records, key=lambda r: (getattr(r, field) or datetime.min, r.id), reverse=True)


class Storage(ABC):
    """Abstract record store used by services and routes"""

    name = "abstract"

    # ---- users ----
    @abstractmethod
    def get_user_by_id(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    def create_user(self, data: UserCreate) -> User:
        """Create a user plus zeroed Stats and EnvironmentalImpact rows"""

    @abstractmethod
    def update_user(self, user_id: int, **fields: Any) -> User: ...

    @abstractmethod
    def update_user_coins(self, user_id: int, delta: int) -> User:
        """Add ``delta`` to the balance; positive deltas also raise total_earned"""

    # ---- detections ----
    @abstractmethod
    def create_detection(self, data: DetectionCreate) -> Detection: ...

    @abstractmethod
    def get_detection(self, detection_id: int) -> Optional[Detection]: ...

    @abstractmethod
    def update_detection(self, detection_id: int, **fields: Any) -> Detection: ...

    @abstractmethod
    def settle_detection(self, detection_id: int, **fields: Any) -> Optional[Detection]:
        """Update a detection only while its verification is pending; None when it is not"""

    @abstractmethod
    def get_user_detections(self, user_id: int, limit: Optional[int] = None) -> List[Detection]: ...

    @abstractmethod
    def get_recent_detections(self, user_id: int, since: datetime) -> List[Detection]: ...

    @abstractmethod
    def get_detection_by_image_hash(self, image_hash: str) -> Optional[Detection]: ...

    def get_recent_same_item_detections(
        self, user_id: int, item_name: str, since: datetime
    ) -> List[Detection]:
        return [d for d in self.get_recent_detections(user_id, since) if matches_item(d, item_name)]

    def get_recent_detections_by_user_agent(
        self, user_id: int, user_agent: str, since: datetime
    ) -> List[Detection]:
        return [d for d in self.get_recent_detections(user_id, since) if d.user_agent == user_agent]

    # ---- transactions ----
    @abstractmethod
    def create_transaction(self, data: TransactionCreate) -> Transaction:
        """Append a transaction without touching the balance"""

    @abstractmethod
    def record_coin_transaction(self, data: TransactionCreate) -> Transaction:
        """Apply the balance change and append the transaction as one unit"""

    @abstractmethod
    def get_user_transactions(self, user_id: int) -> List[Transaction]: ...

    # ---- stats ----
    @abstractmethod
    def get_user_stats(self, user_id: int) -> Optional[Stats]: ...

    @abstractmethod
    def increment_user_stats(self, user_id: int, **increments: int) -> Stats: ...

    @abstractmethod
    def update_user_stats(self, user_id: int, **fields: Any) -> Stats: ...

    # ---- achievements ----
    @abstractmethod
    def create_achievement(self, data: AchievementCreate) -> Achievement: ...

    @abstractmethod
    def get_user_achievements(self, user_id: int) -> List[Achievement]: ...

    # ---- goals ----
    @abstractmethod
    def create_goal(self, user_id: int, data: PersonalGoalCreate) -> PersonalGoal: ...

    @abstractmethod
    def get_user_goals(self, user_id: int) -> List[PersonalGoal]: ...

    @abstractmethod
    def get_goal(self, goal_id: int) -> Optional[PersonalGoal]: ...

    @abstractmethod
    def update_goal_progress(self, goal_id: int, progress: int) -> PersonalGoal: ...

    @abstractmethod
    def complete_goal(self, goal_id: int) -> PersonalGoal: ...

    # ---- environmental impact ----
    @abstractmethod
    def get_environmental_impact(self, user_id: int) -> Optional[EnvironmentalImpact]: ...

    @abstractmethod
    def update_environmental_impact(self, user_id: int, **fields: Any) -> EnvironmentalImpact:
        """Upsert: creates a zeroed row first when none exists"""

    # ---- reminders ----
    @abstractmethod
    def create_reminder(self, user_id: int, data: ReminderCreate) -> UserReminder: ...

    @abstractmethod
    def get_user_reminders(self, user_id: int) -> List[UserReminder]:
        """Active reminders only"""

    @abstractmethod
    def update_reminder_schedule(self, reminder_id: int, next_scheduled: datetime) -> UserReminder: ...

    # ---- habits ----
    @abstractmethod
    def create_habit_entry(self, user_id: int, data: HabitEntryCreate) -> HabitAnalytics: ...

    @abstractmethod
    def get_user_habit_data(
        self,
        user_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[HabitAnalytics]: ...

    @abstractmethod
    def upsert_daily_habit(
        self,
        user_id: int,
        day: date,
        detections: int = 1,
        coins: int = 0,
        item_type: Optional[str] = None,
        favorite_time: Optional[str] = None
    ) -> HabitAnalytics: ...

    # ---- admin listings ----
    @abstractmethod
    def get_all_users(self) -> List[User]: ...

    @abstractmethod
    def get_all_detections(self) -> List[Detection]: ...

    @abstractmethod
    def get_all_transactions(self) -> List[Transaction]: ...

    @abstractmethod
    def get_all_stats(self) -> List[Stats]: ...

    @abstractmethod
    def get_all_achievements(self) -> List[Achievement]: ...
