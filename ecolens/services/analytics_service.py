"""
Analytics Service - goals, environmental impact, reminders and habit insights

These aggregates back the dashboard pages; none of them touch coin balances.
"""
import logging
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from ecolens.exceptions import NotFoundError
from ecolens.schemas.schemas import (
    EnvironmentalImpact,
    HabitAnalytics,
    HabitEntryCreate,
    HabitInsights,
    PersonalGoal,
    PersonalGoalCreate,
    ReminderCreate,
    UserReminder,
)
from ecolens.storage.base import IMPACT_FIELDS, Storage

logger = logging.getLogger(__name__)


# Savings per recycled item, by material category
IMPACT_FACTORS: Dict[str, Dict[str, float]] = {
    "plastic": {"co2": 3.3, "water": 3.0, "energy": 0.5, "landfill": 0.03, "trees": 0.0},
    "paper": {"co2": 0.5, "water": 10.0, "energy": 0.3, "landfill": 0.1, "trees": 0.017},
    "glass": {"co2": 1.2, "water": 1.5, "energy": 0.4, "landfill": 0.35, "trees": 0.0},
    "metal": {"co2": 1.6, "water": 2.5, "energy": 1.2, "landfill": 0.015, "trees": 0.0},
    "other": {"co2": 0.2, "water": 0.5, "energy": 0.1, "landfill": 0.05, "trees": 0.0},
}

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def time_of_day(moment: datetime) -> str:
    if 5 <= moment.hour < 12:
        return "morning"
    if 12 <= moment.hour < 17:
        return "afternoon"
    if 17 <= moment.hour < 21:
        return "evening"
    return "night"


def recycling_score(co2_saved: float) -> int:
    return min(1000, int(co2_saved * 10))


def _consecutive_days(days: List[date]) -> int:
    """Longest run of consecutive calendar days in a list"""
    ordered = sorted(set(days))
    best = run = 0
    previous = None
    for day in ordered:
        run = run + 1 if previous and day - previous == timedelta(days=1) else 1
        best = max(best, run)
        previous = day
    return best


class AnalyticsService:

    # ---- goals ----
    def create_goal(self, storage: Storage, user_id: int, data: PersonalGoalCreate) -> PersonalGoal:
        goal = storage.create_goal(user_id, data)
        logger.info(f"User {user_id} created {goal.goal_type.value} goal {goal.id}")
        return goal

    def get_goals(self, storage: Storage, user_id: int) -> List[PersonalGoal]:
        return storage.get_user_goals(user_id)

    def update_goal_progress(self, storage: Storage, goal_id: int, progress: int) -> PersonalGoal:
        """Set progress; the goal completes itself once the target is reached"""
        goal = storage.update_goal_progress(goal_id, progress)
        if goal.completed_at is None and goal.current_progress >= goal.target_value:
            goal = storage.complete_goal(goal_id)
            logger.info(f"Goal {goal_id} completed at progress {progress}")
        return goal

    def complete_goal(self, storage: Storage, goal_id: int) -> PersonalGoal:
        if storage.get_goal(goal_id) is None:
            raise NotFoundError("Goal not found")
        return storage.complete_goal(goal_id)

    # ---- environmental impact ----
    def get_environmental_impact(self, storage: Storage, user_id: int) -> EnvironmentalImpact:
        impact = storage.get_environmental_impact(user_id)
        if impact is None:
            impact = storage.update_environmental_impact(user_id)
        return impact

    def update_environmental_impact(self, storage: Storage, user_id: int, **fields: Any) -> EnvironmentalImpact:
        return storage.update_environmental_impact(
            user_id, **{k: v for k, v in fields.items() if k in IMPACT_FIELDS and v is not None}
        )

    def apply_detection_impact(self, storage: Storage, user_id: int, category: str) -> EnvironmentalImpact:
        """Add one recycled item's savings to the user's running totals"""
        factors = IMPACT_FACTORS.get(category, IMPACT_FACTORS["other"])
        current = self.get_environmental_impact(storage, user_id)
        co2 = round(current.total_co2_saved + factors["co2"], 3)
        return storage.update_environmental_impact(
            user_id,
            total_co2_saved=co2,
            total_water_saved=round(current.total_water_saved + factors["water"], 3),
            total_energy_saved=round(current.total_energy_saved + factors["energy"], 3),
            landfill_diverted=round(current.landfill_diverted + factors["landfill"], 3),
            trees_saved=round(current.trees_saved + factors["trees"], 3),
            recycling_score=recycling_score(co2),
        )

    # ---- reminders ----
    def create_reminder(self, storage: Storage, user_id: int, data: ReminderCreate) -> UserReminder:
        if data.next_scheduled is None and data.schedule_time:
            data = data.model_copy(update={"next_scheduled": self.next_occurrence(data.schedule_time)})
        return storage.create_reminder(user_id, data)

    def next_occurrence(self, schedule_time: str, now: Optional[datetime] = None) -> datetime:
        """Next datetime at HH:MM strictly after now"""
        now = now or datetime.utcnow()
        hour, minute = (int(part) for part in schedule_time.split(":"))
        candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        return candidate if candidate > now else candidate + timedelta(days=1)

    def get_reminders(self, storage: Storage, user_id: int) -> List[UserReminder]:
        return storage.get_user_reminders(user_id)

    # ---- habits ----
    def create_habit_entry(self, storage: Storage, user_id: int, data: HabitEntryCreate) -> HabitAnalytics:
        return storage.create_habit_entry(user_id, data)

    def get_habit_data(
        self,
        storage: Storage,
        user_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[HabitAnalytics]:
        return storage.get_user_habit_data(user_id, start, end)

    def get_habit_insights(self, storage: Storage, user_id: int) -> HabitInsights:
        entries = storage.get_user_habit_data(user_id)
        if not entries:
            return HabitInsights()

        active_days = [e.date.date() for e in entries if e.detections_count > 0]
        times = Counter(e.favorite_time for e in entries if e.favorite_time)
        weekdays = Counter()
        for entry in entries:
            weekdays[WEEKDAYS[entry.date.weekday()]] += entry.detections_count

        return HabitInsights(
            average_daily_detections=round(
                sum(e.detections_count for e in entries) / len(entries), 2
            ),
            best_streak=_consecutive_days(active_days),
            favorite_time=times.most_common(1)[0][0] if times else None,
            weekday_pattern={day: weekdays.get(day, 0) for day in WEEKDAYS},
            total_days_tracked=len(entries),
        )

    def current_streak(self, entries: List[HabitAnalytics], today: Optional[date] = None) -> int:
        """Consecutive active days ending today"""
        today = today or datetime.utcnow().date()
        active = {e.date.date() for e in entries if e.detections_count > 0}
        streak = 0
        while today - timedelta(days=streak) in active:
            streak += 1
        return streak

    def get_analytics_dashboard(self, storage: Storage, user_id: int) -> Dict[str, Any]:
        goals = storage.get_user_goals(user_id)
        reminders = storage.get_user_reminders(user_id)
        now = datetime.utcnow()
        recent_habits = storage.get_user_habit_data(user_id, now - timedelta(days=30), now)

        completed = [g for g in goals if g.completed_at]
        active = [g for g in goals if g.is_active and not g.completed_at]

        return {
            "goals": {
                "active": active,
                "completed": completed,
                "completion_rate": round(len(completed) / len(goals) * 100) if goals else 0,
                "total": len(goals),
            },
            "environmental_impact": self.get_environmental_impact(storage, user_id),
            "habits": {
                "insights": self.get_habit_insights(storage, user_id),
                "current_streak": self.current_streak(recent_habits, now.date()),
                "recent_data": recent_habits[:7],
            },
            "reminders": {
                "active": [r for r in reminders if r.is_active],
                "total": len(reminders),
            },
        }


analytics_service = AnalyticsService()
