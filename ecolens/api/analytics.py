"""
Analytics Router - goals, environmental impact, reminders and habits
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query

from ecolens.dependencies import get_storage
from ecolens.schemas.schemas import (
    EnvironmentalImpact,
    EnvironmentalImpactUpdate,
    GoalProgressRequest,
    HabitAnalytics,
    HabitEntryCreate,
    HabitInsights,
    PersonalGoal,
    PersonalGoalCreate,
    ReminderCreate,
    UserReminder,
)
from ecolens.services.analytics_service import analytics_service
from ecolens.storage import Storage

router = APIRouter()


# ============================================
# GOALS
# ============================================
@router.get("/user/{user_id}/goals", response_model=List[PersonalGoal])
async def get_goals(user_id: int, storage: Storage = Depends(get_storage)):
    return analytics_service.get_goals(storage, user_id)


@router.post("/user/{user_id}/goals", response_model=PersonalGoal)
async def create_goal(
    user_id: int,
    request: PersonalGoalCreate,
    storage: Storage = Depends(get_storage)
):
    return analytics_service.create_goal(storage, user_id, request)


@router.patch("/goals/{goal_id}/progress", response_model=PersonalGoal)
async def update_goal_progress(
    goal_id: int,
    request: GoalProgressRequest,
    storage: Storage = Depends(get_storage)
):
    """Set progress; reaching the target completes the goal"""
    return analytics_service.update_goal_progress(storage, goal_id, request.progress)


@router.post("/goals/{goal_id}/complete", response_model=PersonalGoal)
async def complete_goal(goal_id: int, storage: Storage = Depends(get_storage)):
    return analytics_service.complete_goal(storage, goal_id)


# ============================================
# ENVIRONMENTAL IMPACT
# ============================================
@router.get("/user/{user_id}/environmental-impact", response_model=EnvironmentalImpact)
async def get_environmental_impact(user_id: int, storage: Storage = Depends(get_storage)):
    return analytics_service.get_environmental_impact(storage, user_id)


@router.patch("/user/{user_id}/environmental-impact", response_model=EnvironmentalImpact)
async def update_environmental_impact(
    user_id: int,
    request: EnvironmentalImpactUpdate,
    storage: Storage = Depends(get_storage)
):
    return analytics_service.update_environmental_impact(
        storage, user_id, **request.model_dump(exclude_none=True)
    )


# ============================================
# REMINDERS
# ============================================
@router.get("/user/{user_id}/reminders", response_model=List[UserReminder])
async def get_reminders(user_id: int, storage: Storage = Depends(get_storage)):
    """Active reminders"""
    return analytics_service.get_reminders(storage, user_id)


@router.post("/user/{user_id}/reminders", response_model=UserReminder)
async def create_reminder(
    user_id: int,
    request: ReminderCreate,
    storage: Storage = Depends(get_storage)
):
    return analytics_service.create_reminder(storage, user_id, request)


# ============================================
# HABITS
# ============================================
@router.get("/user/{user_id}/habits", response_model=List[HabitAnalytics])
async def get_habits(
    user_id: int,
    start_date: Optional[datetime] = Query(None, description="Inclusive lower bound"),
    end_date: Optional[datetime] = Query(None, description="Inclusive upper bound"),
    storage: Storage = Depends(get_storage)
):
    return analytics_service.get_habit_data(storage, user_id, start_date, end_date)


@router.post("/user/{user_id}/habits", response_model=HabitAnalytics)
async def create_habit_entry(
    user_id: int,
    request: HabitEntryCreate,
    storage: Storage = Depends(get_storage)
):
    return analytics_service.create_habit_entry(storage, user_id, request)


@router.get("/user/{user_id}/habit-insights", response_model=HabitInsights)
async def get_habit_insights(user_id: int, storage: Storage = Depends(get_storage)):
    return analytics_service.get_habit_insights(storage, user_id)


@router.get("/user/{user_id}/analytics-dashboard")
async def get_analytics_dashboard(
    user_id: int,
    storage: Storage = Depends(get_storage)
) -> Dict[str, Any]:
    """
    All dashboard aggregates in one call.

    Returns goals (active, completed, completion rate), environmental
    impact, habit insights with the current streak, and reminders.
    """
    return analytics_service.get_analytics_dashboard(storage, user_id)
