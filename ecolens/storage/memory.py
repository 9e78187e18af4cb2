"""
Process-local storage backed by dictionaries.

Non-persistent; used for the demo deployment and in tests. Every mutation
runs under one re-entrant lock so a balance change and its transaction are
never observed apart.
"""
import logging
import threading
from collections import defaultdict
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel

from ecolens.exceptions import InsufficientCoinsError, NotFoundError, ValidationFailedError
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
    User,
    UserCreate,
    UserReminder,
    VerificationStatus,
)
from ecolens.storage.base import Storage, coin_delta, newest_first

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)


class MemStorage(Storage):
    """Dictionary-backed implementation of :class:`Storage`"""

    name = "memory"

    def __init__(self):
        self._lock = threading.RLock()
        self._tables: Dict[str, Dict[int, BaseModel]] = defaultdict(dict)
        self._ids: Dict[str, int] = defaultdict(int)

    # ---- internals ----
    def _next_id(self, table: str) -> int:
        self._ids[table] += 1
        return self._ids[table]

    def _insert(self, table: str, model: Type[R], **values: Any) -> R:
        with self._lock:
            record = model.model_validate({"id": self._next_id(table), **values})
            self._tables[table][record.id] = record
            return record

    def _get(self, table: str, record_id: int) -> Optional[BaseModel]:
        return self._tables[table].get(record_id)

    def _replace(self, table: str, record: R, **fields: Any) -> R:
        with self._lock:
            updated = type(record).model_validate({**record.model_dump(), **fields})
            self._tables[table][record.id] = updated
            return updated

    def _rows(self, table: str) -> List[Any]:
        return list(self._tables[table].values())

    def _stats_for(self, user_id: int) -> Stats:
        for stats in self._rows("stats"):
            if stats.user_id == user_id:
                return stats
        raise NotFoundError("User stats not found")

    # ---- users ----
    def get_user_by_id(self, user_id: int) -> Optional[User]:
        return self._get("users", user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return next((u for u in self._rows("users") if u.username == username), None)

    def _check_unique(self, exclude_id: Optional[int] = None, **fields: Any) -> None:
        for user in self._rows("users"):
            if user.id == exclude_id:
                continue
            for key, value in fields.items():
                if value is not None and getattr(user, key) == value:
                    raise ValidationFailedError(f"A user with this {key} already exists")

    def create_user(self, data: UserCreate) -> User:
        with self._lock:
            self._check_unique(
                username=data.username, email=data.email, firebase_uid=data.firebase_uid
            )
            now = datetime.utcnow()
            user = self._insert(
                "users", User,
                **data.model_dump(), green_coins=0, total_earned=0, created_at=now
            )
            self._insert("stats", Stats, user_id=user.id)
            self._insert("impact", EnvironmentalImpact, user_id=user.id, last_updated=now)
            logger.info(f"Created user {user.id} ({user.username})")
            return user

    def update_user(self, user_id: int, **fields: Any) -> User:
        with self._lock:
            user = self.get_user_by_id(user_id)
            if not user:
                raise NotFoundError("User not found")
            self._check_unique(
                exclude_id=user_id,
                **{k: v for k, v in fields.items() if k in ("username", "email", "firebase_uid")}
            )
            return self._replace("users", user, **fields)

    def update_user_coins(self, user_id: int, delta: int) -> User:
        with self._lock:
            user = self.get_user_by_id(user_id)
            if not user:
                raise NotFoundError("User not found")
            balance = user.green_coins + delta
            if balance < 0:
                raise InsufficientCoinsError()
            total_earned = user.total_earned + delta if delta > 0 else user.total_earned
            return self._replace("users", user, green_coins=balance, total_earned=total_earned)

    # ---- detections ----
    def create_detection(self, data: DetectionCreate) -> Detection:
        return self._insert(
            "detections", Detection, **data.model_dump(), created_at=datetime.utcnow()
        )

    def get_detection(self, detection_id: int) -> Optional[Detection]:
        return self._get("detections", detection_id)

    def update_detection(self, detection_id: int, **fields: Any) -> Detection:
        with self._lock:
            detection = self.get_detection(detection_id)
            if not detection:
                raise NotFoundError("Detection not found")
            return self._replace("detections", detection, **fields)

    def settle_detection(self, detection_id: int, **fields: Any) -> Optional[Detection]:
        with self._lock:
            detection = self.get_detection(detection_id)
            if not detection:
                raise NotFoundError("Detection not found")
            if detection.verification_status != VerificationStatus.pending:
                return None
            return self._replace("detections", detection, **fields)

    def get_user_detections(self, user_id: int, limit: Optional[int] = None) -> List[Detection]:
        rows = newest_first([d for d in self._rows("detections") if d.user_id == user_id])
        return rows[:limit] if limit else rows

    def get_recent_detections(self, user_id: int, since: datetime) -> List[Detection]:
        return [d for d in self.get_user_detections(user_id) if d.created_at >= since]

    def get_detection_by_image_hash(self, image_hash: str) -> Optional[Detection]:
        return next(
            (d for d in self._rows("detections") if d.image_hash == image_hash), None
        )

    # ---- transactions ----
    def create_transaction(self, data: TransactionCreate) -> Transaction:
        return self._insert(
            "transactions", Transaction, **data.model_dump(), created_at=datetime.utcnow()
        )

    def record_coin_transaction(self, data: TransactionCreate) -> Transaction:
        with self._lock:
            self.update_user_coins(data.user_id, coin_delta(data))
            return self.create_transaction(data)

    def get_user_transactions(self, user_id: int) -> List[Transaction]:
        return newest_first([t for t in self._rows("transactions") if t.user_id == user_id])

    # ---- stats ----
    def get_user_stats(self, user_id: int) -> Optional[Stats]:
        return next((s for s in self._rows("stats") if s.user_id == user_id), None)

    def increment_user_stats(self, user_id: int, **increments: int) -> Stats:
        with self._lock:
            stats = self._stats_for(user_id)
            values = {k: getattr(stats, k) + v for k, v in increments.items()}
            return self._replace("stats", stats, **values)

    def update_user_stats(self, user_id: int, **fields: Any) -> Stats:
        with self._lock:
            return self._replace("stats", self._stats_for(user_id), **fields)

    # ---- achievements ----
    def create_achievement(self, data: AchievementCreate) -> Achievement:
        return self._insert(
            "achievements", Achievement, **data.model_dump(), unlocked_at=datetime.utcnow()
        )

    def get_user_achievements(self, user_id: int) -> List[Achievement]:
        return newest_first(
            [a for a in self._rows("achievements") if a.user_id == user_id], "unlocked_at"
        )

    # ---- goals ----
    def create_goal(self, user_id: int, data: PersonalGoalCreate) -> PersonalGoal:
        now = datetime.utcnow()
        return self._insert(
            "goals", PersonalGoal,
            **data.model_dump(), user_id=user_id, start_date=now, created_at=now
        )

    def get_user_goals(self, user_id: int) -> List[PersonalGoal]:
        return newest_first([g for g in self._rows("goals") if g.user_id == user_id])

    def get_goal(self, goal_id: int) -> Optional[PersonalGoal]:
        return self._get("goals", goal_id)

    def _goal_or_404(self, goal_id: int) -> PersonalGoal:
        goal = self.get_goal(goal_id)
        if not goal:
            raise NotFoundError("Goal not found")
        return goal

    def update_goal_progress(self, goal_id: int, progress: int) -> PersonalGoal:
        with self._lock:
            return self._replace("goals", self._goal_or_404(goal_id), current_progress=progress)

    def complete_goal(self, goal_id: int) -> PersonalGoal:
        with self._lock:
            return self._replace(
                "goals", self._goal_or_404(goal_id),
                is_active=False, completed_at=datetime.utcnow()
            )

    # ---- environmental impact ----
    def get_environmental_impact(self, user_id: int) -> Optional[EnvironmentalImpact]:
        return next((i for i in self._rows("impact") if i.user_id == user_id), None)

    def update_environmental_impact(self, user_id: int, **fields: Any) -> EnvironmentalImpact:
        with self._lock:
            impact = self.get_environmental_impact(user_id)
            if impact is None:
                impact = self._insert("impact", EnvironmentalImpact, user_id=user_id)
            return self._replace("impact", impact, **fields, last_updated=datetime.utcnow())

    # ---- reminders ----
    def create_reminder(self, user_id: int, data: ReminderCreate) -> UserReminder:
        return self._insert(
            "reminders", UserReminder,
            **data.model_dump(), user_id=user_id, created_at=datetime.utcnow()
        )

    def get_user_reminders(self, user_id: int) -> List[UserReminder]:
        return [
            r for r in newest_first(self._rows("reminders"))
            if r.user_id == user_id and r.is_active
        ]

    def update_reminder_schedule(self, reminder_id: int, next_scheduled: datetime) -> UserReminder:
        with self._lock:
            reminder = self._get("reminders", reminder_id)
            if not reminder:
                raise NotFoundError("Reminder not found")
            return self._replace("reminders", reminder, next_scheduled=next_scheduled)

    # ---- habits ----
    def create_habit_entry(self, user_id: int, data: HabitEntryCreate) -> HabitAnalytics:
        return self._insert("habits", HabitAnalytics, **data.model_dump(), user_id=user_id)

    def get_user_habit_data(
        self,
        user_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[HabitAnalytics]:
        rows = [
            h for h in self._rows("habits")
            if h.user_id == user_id
            and (start is None or h.date >= start)
            and (end is None or h.date <= end)
        ]
        return newest_first(rows, "date")

    def upsert_daily_habit(
        self,
        user_id: int,
        day: date,
        detections: int = 1,
        coins: int = 0,
        item_type: Optional[str] = None,
        favorite_time: Optional[str] = None
    ) -> HabitAnalytics:
        with self._lock:
            row = next(
                (h for h in self._rows("habits") if h.user_id == user_id and h.date.date() == day),
                None
            )
            if row is None:
                row = self._insert(
                    "habits", HabitAnalytics,
                    user_id=user_id, date=datetime.combine(day, time.min), item_types={}
                )
            item_types = dict(row.item_types or {})
            if item_type:
                item_types[item_type] = item_types.get(item_type, 0) + 1
            return self._replace(
                "habits", row,
                detections_count=row.detections_count + detections,
                coins_earned=row.coins_earned + coins,
                item_types=item_types,
                favorite_time=favorite_time or row.favorite_time
            )

    # ---- admin listings ----
    def get_all_users(self) -> List[User]:
        return sorted(self._rows("users"), key=lambda u: u.id)

    def get_all_detections(self) -> List[Detection]:
        return newest_first(self._rows("detections"))

    def get_all_transactions(self) -> List[Transaction]:
        return newest_first(self._rows("transactions"))

    def get_all_stats(self) -> List[Stats]:
        return sorted(self._rows("stats"), key=lambda s: s.user_id)

    def get_all_achievements(self) -> List[Achievement]:
        return newest_first(self._rows("achievements"), "unlocked_at")
