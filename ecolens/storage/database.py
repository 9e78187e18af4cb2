"""
Persistent storage on SQLAlchemy.

One session per operation; ``record_coin_transaction`` updates the balance
and appends the transaction inside a single database transaction.
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from typing import Any, Iterator, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ecolens.db import models
from ecolens.db.database import SessionLocal, init_db
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
from ecolens.storage.base import Storage, coin_delta

logger = logging.getLogger(__name__)


def _to_transaction(row: models.Transaction) -> Transaction:
    return Transaction(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        amount=row.amount,
        description=row.description,
        detection_id=row.detection_id,
        qr_code=row.qr_code,
        metadata=row.extra_metadata,
        created_at=row.created_at,
    )


def _plain(value: Any) -> Any:
    """Enum members are stored by value"""
    return getattr(value, "value", value)


class DatabaseStorage(Storage):
    """SQLAlchemy implementation of :class:`Storage`"""

    name = "database"

    def __init__(self, session_factory=SessionLocal, create_tables: bool = True):
        self._session_factory = session_factory
        if create_tables:
            init_db(bind=session_factory.kw.get("bind"))

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _add(self, db: Session, row: Any) -> Any:
        db.add(row)
        try:
            db.flush()
        except IntegrityError as e:
            logger.warning(f"Integrity error on {row.__tablename__}: {e.orig}")
            raise ValidationFailedError(f"Duplicate or invalid {row.__tablename__} record")
        db.refresh(row)
        return row

    @staticmethod
    def _apply(row: Any, fields: dict) -> None:
        for key, value in fields.items():
            if not hasattr(row, key):
                raise ValidationFailedError(f"Unknown field: {key}")
            setattr(row, key, _plain(value))

    def _user_row(self, db: Session, user_id: int, for_update: bool = False) -> models.User:
        query = db.query(models.User).filter(models.User.id == user_id)
        if for_update:
            query = query.with_for_update()
        user = query.first()
        if not user:
            raise NotFoundError("User not found")
        return user

    def _stats_row(self, db: Session, user_id: int) -> models.Stats:
        stats = db.query(models.Stats).filter(models.Stats.user_id == user_id).first()
        if not stats:
            raise NotFoundError("User stats not found")
        return stats

    # ---- users ----
    def get_user_by_id(self, user_id: int) -> Optional[User]:
        with self._session() as db:
            row = db.query(models.User).filter(models.User.id == user_id).first()
            return User.model_validate(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._session() as db:
            row = db.query(models.User).filter(models.User.username == username).first()
            return User.model_validate(row) if row else None

    def create_user(self, data: UserCreate) -> User:
        with self._session() as db:
            user = self._add(db, models.User(**data.model_dump(), green_coins=0, total_earned=0))
            self._add(db, models.Stats(user_id=user.id))
            self._add(db, models.EnvironmentalImpact(user_id=user.id))
            logger.info(f"Created user {user.id} ({user.username})")
            return User.model_validate(user)

    def update_user(self, user_id: int, **fields: Any) -> User:
        with self._session() as db:
            user = self._user_row(db, user_id)
            self._apply(user, fields)
            return User.model_validate(self._add(db, user))

    def _change_coins(self, db: Session, user_id: int, delta: int) -> models.User:
        user = self._user_row(db, user_id, for_update=True)
        if user.green_coins + delta < 0:
            raise InsufficientCoinsError()
        user.green_coins += delta
        if delta > 0:
            user.total_earned += delta
        db.flush()
        return user

    def update_user_coins(self, user_id: int, delta: int) -> User:
        with self._session() as db:
            return User.model_validate(self._change_coins(db, user_id, delta))

    # ---- detections ----
    def create_detection(self, data: DetectionCreate) -> Detection:
        values = data.model_dump(mode="json")
        with self._session() as db:
            return Detection.model_validate(self._add(db, models.Detection(**values)))

    def get_detection(self, detection_id: int) -> Optional[Detection]:
        with self._session() as db:
            row = db.get(models.Detection, detection_id)
            return Detection.model_validate(row) if row else None

    def update_detection(self, detection_id: int, **fields: Any) -> Detection:
        with self._session() as db:
            row = db.get(models.Detection, detection_id)
            if not row:
                raise NotFoundError("Detection not found")
            self._apply(row, fields)
            return Detection.model_validate(self._add(db, row))

    def settle_detection(self, detection_id: int, **fields: Any) -> Optional[Detection]:
        with self._session() as db:
            if db.get(models.Detection, detection_id) is None:
                raise NotFoundError("Detection not found")
            changed = (
                db.query(models.Detection)
                .filter(
                    models.Detection.id == detection_id,
                    models.Detection.verification_status == VerificationStatus.pending.value
                )
                .update({key: _plain(value) for key, value in fields.items()}, synchronize_session=False)
            )
            if not changed:
                return None
            db.expire_all()
            return Detection.model_validate(db.get(models.Detection, detection_id))

    def get_user_detections(self, user_id: int, limit: Optional[int] = None) -> List[Detection]:
        with self._session() as db:
            query = (
                db.query(models.Detection)
                .filter(models.Detection.user_id == user_id)
                .order_by(models.Detection.created_at.desc(), models.Detection.id.desc())
            )
            if limit:
                query = query.limit(limit)
            return [Detection.model_validate(r) for r in query.all()]

    def get_recent_detections(self, user_id: int, since: datetime) -> List[Detection]:
        with self._session() as db:
            rows = (
                db.query(models.Detection)
                .filter(
                    models.Detection.user_id == user_id,
                    models.Detection.created_at >= since
                )
                .order_by(models.Detection.created_at.desc(), models.Detection.id.desc())
                .all()
            )
            return [Detection.model_validate(r) for r in rows]

    def get_detection_by_image_hash(self, image_hash: str) -> Optional[Detection]:
        with self._session() as db:
            row = (
                db.query(models.Detection)
                .filter(models.Detection.image_hash == image_hash)
                .order_by(models.Detection.id)
                .first()
            )
            return Detection.model_validate(row) if row else None

    # ---- transactions ----
    def _add_transaction(self, db: Session, data: TransactionCreate) -> models.Transaction:
        values = data.model_dump(mode="json")
        metadata = values.pop("metadata")
        return self._add(db, models.Transaction(**values, extra_metadata=metadata))

    def create_transaction(self, data: TransactionCreate) -> Transaction:
        with self._session() as db:
            return _to_transaction(self._add_transaction(db, data))

    def record_coin_transaction(self, data: TransactionCreate) -> Transaction:
        with self._session() as db:
            self._change_coins(db, data.user_id, coin_delta(data))
            return _to_transaction(self._add_transaction(db, data))

    def get_user_transactions(self, user_id: int) -> List[Transaction]:
        with self._session() as db:
            rows = (
                db.query(models.Transaction)
                .filter(models.Transaction.user_id == user_id)
                .order_by(models.Transaction.created_at.desc(), models.Transaction.id.desc())
                .all()
            )
            return [_to_transaction(r) for r in rows]

    # ---- stats ----
    def get_user_stats(self, user_id: int) -> Optional[Stats]:
        with self._session() as db:
            row = db.query(models.Stats).filter(models.Stats.user_id == user_id).first()
            return Stats.model_validate(row) if row else None

    def increment_user_stats(self, user_id: int, **increments: int) -> Stats:
        with self._session() as db:
            stats = self._stats_row(db, user_id)
            for key, value in increments.items():
                setattr(stats, key, (getattr(stats, key) or 0) + value)
            return Stats.model_validate(self._add(db, stats))

    def update_user_stats(self, user_id: int, **fields: Any) -> Stats:
        with self._session() as db:
            stats = self._stats_row(db, user_id)
            self._apply(stats, fields)
            return Stats.model_validate(self._add(db, stats))

    # ---- achievements ----
    def create_achievement(self, data: AchievementCreate) -> Achievement:
        with self._session() as db:
            row = self._add(db, models.Achievement(**data.model_dump()))
            return Achievement.model_validate(row)

    def get_user_achievements(self, user_id: int) -> List[Achievement]:
        with self._session() as db:
            rows = (
                db.query(models.Achievement)
                .filter(models.Achievement.user_id == user_id)
                .order_by(models.Achievement.unlocked_at.desc(), models.Achievement.id.desc())
                .all()
            )
            return [Achievement.model_validate(r) for r in rows]

    # ---- goals ----
    def create_goal(self, user_id: int, data: PersonalGoalCreate) -> PersonalGoal:
        with self._session() as db:
            row = models.PersonalGoal(
                **{k: _plain(v) for k, v in data.model_dump().items()}, user_id=user_id
            )
            return PersonalGoal.model_validate(self._add(db, row))

    def get_user_goals(self, user_id: int) -> List[PersonalGoal]:
        with self._session() as db:
            rows = (
                db.query(models.PersonalGoal)
                .filter(models.PersonalGoal.user_id == user_id)
                .order_by(models.PersonalGoal.created_at.desc(), models.PersonalGoal.id.desc())
                .all()
            )
            return [PersonalGoal.model_validate(r) for r in rows]

    def get_goal(self, goal_id: int) -> Optional[PersonalGoal]:
        with self._session() as db:
            row = db.get(models.PersonalGoal, goal_id)
            return PersonalGoal.model_validate(row) if row else None

    def _update_goal(self, goal_id: int, **fields: Any) -> PersonalGoal:
        with self._session() as db:
            row = db.get(models.PersonalGoal, goal_id)
            if not row:
                raise NotFoundError("Goal not found")
            self._apply(row, fields)
            return PersonalGoal.model_validate(self._add(db, row))

    def update_goal_progress(self, goal_id: int, progress: int) -> PersonalGoal:
        return self._update_goal(goal_id, current_progress=progress)

    def complete_goal(self, goal_id: int) -> PersonalGoal:
        return self._update_goal(goal_id, is_active=False, completed_at=datetime.utcnow())

    # ---- environmental impact ----
    def get_environmental_impact(self, user_id: int) -> Optional[EnvironmentalImpact]:
        with self._session() as db:
            row = (
                db.query(models.EnvironmentalImpact)
                .filter(models.EnvironmentalImpact.user_id == user_id)
                .first()
            )
            return EnvironmentalImpact.model_validate(row) if row else None

    def update_environmental_impact(self, user_id: int, **fields: Any) -> EnvironmentalImpact:
        with self._session() as db:
            row = (
                db.query(models.EnvironmentalImpact)
                .filter(models.EnvironmentalImpact.user_id == user_id)
                .first()
            )
            if row is None:
                row = self._add(db, models.EnvironmentalImpact(user_id=user_id))
            self._apply(row, {**fields, "last_updated": datetime.utcnow()})
            return EnvironmentalImpact.model_validate(self._add(db, row))

    # ---- reminders ----
    def create_reminder(self, user_id: int, data: ReminderCreate) -> UserReminder:
        with self._session() as db:
            row = self._add(db, models.UserReminder(**data.model_dump(), user_id=user_id))
            return UserReminder.model_validate(row)

    def get_user_reminders(self, user_id: int) -> List[UserReminder]:
        with self._session() as db:
            rows = (
                db.query(models.UserReminder)
                .filter(
                    models.UserReminder.user_id == user_id,
                    models.UserReminder.is_active.is_(True)
                )
                .order_by(models.UserReminder.created_at.desc(), models.UserReminder.id.desc())
                .all()
            )
            return [UserReminder.model_validate(r) for r in rows]

    def update_reminder_schedule(self, reminder_id: int, next_scheduled: datetime) -> UserReminder:
        with self._session() as db:
            row = db.get(models.UserReminder, reminder_id)
            if not row:
                raise NotFoundError("Reminder not found")
            row.next_scheduled = next_scheduled
            return UserReminder.model_validate(self._add(db, row))

    # ---- habits ----
    def create_habit_entry(self, user_id: int, data: HabitEntryCreate) -> HabitAnalytics:
        with self._session() as db:
            row = self._add(db, models.HabitAnalytics(**data.model_dump(), user_id=user_id))
            return HabitAnalytics.model_validate(row)

    def get_user_habit_data(
        self,
        user_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[HabitAnalytics]:
        with self._session() as db:
            query = db.query(models.HabitAnalytics).filter(models.HabitAnalytics.user_id == user_id)
            if start is not None:
                query = query.filter(models.HabitAnalytics.date >= start)
            if end is not None:
                query = query.filter(models.HabitAnalytics.date <= end)
            rows = query.order_by(
                models.HabitAnalytics.date.desc(), models.HabitAnalytics.id.desc()
            ).all()
            return [HabitAnalytics.model_validate(r) for r in rows]

    def upsert_daily_habit(
        self,
        user_id: int,
        day: date,
        detections: int = 1,
        coins: int = 0,
        item_type: Optional[str] = None,
        favorite_time: Optional[str] = None
    ) -> HabitAnalytics:
        start = datetime.combine(day, time.min)
        with self._session() as db:
            row = (
                db.query(models.HabitAnalytics)
                .filter(
                    models.HabitAnalytics.user_id == user_id,
                    models.HabitAnalytics.date >= start,
                    models.HabitAnalytics.date < start + timedelta(days=1)
                )
                .first()
            )
            if row is None:
                row = self._add(db, models.HabitAnalytics(user_id=user_id, date=start, item_types={}))
            row.detections_count += detections
            row.coins_earned += coins
            if item_type:
                # reassign so the JSON column is flagged dirty
                item_types = dict(row.item_types or {})
                item_types[item_type] = item_types.get(item_type, 0) + 1
                row.item_types = item_types
            if favorite_time:
                row.favorite_time = favorite_time
            return HabitAnalytics.model_validate(self._add(db, row))

    # ---- admin listings ----
    def get_all_users(self) -> List[User]:
        with self._session() as db:
            return [User.model_validate(r) for r in db.query(models.User).order_by(models.User.id).all()]

    def get_all_detections(self) -> List[Detection]:
        with self._session() as db:
            rows = db.query(models.Detection).order_by(
                models.Detection.created_at.desc(), models.Detection.id.desc()
            ).all()
            return [Detection.model_validate(r) for r in rows]

    def get_all_transactions(self) -> List[Transaction]:
        with self._session() as db:
            rows = db.query(models.Transaction).order_by(
                models.Transaction.created_at.desc(), models.Transaction.id.desc()
            ).all()
            return [_to_transaction(r) for r in rows]

    def get_all_stats(self) -> List[Stats]:
        with self._session() as db:
            rows = db.query(models.Stats).order_by(models.Stats.user_id).all()
            return [Stats.model_validate(r) for r in rows]

    def get_all_achievements(self) -> List[Achievement]:
        with self._session() as db:
            rows = db.query(models.Achievement).order_by(
                models.Achievement.unlocked_at.desc(), models.Achievement.id.desc()
            ).all()
            return [Achievement.model_validate(r) for r in rows]
