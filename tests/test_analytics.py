"""
Tests for goals, environmental impact, reminders and habit analytics
"""
from datetime import datetime, timedelta

import pytest

from ecolens.schemas.schemas import HabitEntryCreate
from ecolens.services.analytics_service import (
    _consecutive_days,
    analytics_service,
    recycling_score,
    time_of_day,
)

NOW = datetime(2026, 3, 4, 12, 0)


class TestHelpers:

    @pytest.mark.parametrize("hour,label", [
        (5, "morning"), (11, "morning"), (12, "afternoon"), (17, "evening"), (21, "night"), (2, "night"),
    ])
    def test_time_of_day(self, hour, label):
        assert time_of_day(NOW.replace(hour=hour)) == label

    def test_recycling_score_is_capped(self):
        assert recycling_score(6.6) == 66
        assert recycling_score(500) == 1000

    def test_consecutive_days(self):
        day = NOW.date()
        days = [day, day - timedelta(days=1), day - timedelta(days=2), day - timedelta(days=7)]
        assert _consecutive_days(days) == 3
        assert _consecutive_days([]) == 0

    @pytest.mark.parametrize("schedule,expected", [
        ("18:30", datetime(2026, 3, 4, 18, 30)),
        ("08:00", datetime(2026, 3, 5, 8, 0)),
        ("12:00", datetime(2026, 3, 5, 12, 0)),
    ])
    def test_next_occurrence(self, schedule, expected):
        assert analytics_service.next_occurrence(schedule, NOW) == expected


class TestImpact:

    def test_detection_impact_accumulates(self, storage, demo_user):
        analytics_service.apply_detection_impact(storage, demo_user.id, "plastic")
        impact = analytics_service.apply_detection_impact(storage, demo_user.id, "plastic")

        assert impact.total_co2_saved == pytest.approx(6.6)
        assert impact.total_water_saved == pytest.approx(6.0)
        assert impact.recycling_score == 66

    def test_unknown_category_counts_as_other(self, storage, demo_user):
        impact = analytics_service.apply_detection_impact(storage, demo_user.id, "rubber")
        assert impact.total_co2_saved == pytest.approx(0.2)

    def test_patch_endpoint(self, client):
        response = client.patch("/api/user/1/environmental-impact", json={"total_co2_saved": 5.5})
        assert response.status_code == 200
        body = response.json()
        assert body["total_co2_saved"] == 5.5
        assert body["total_water_saved"] == 0

    def test_negative_values_are_rejected(self, client):
        response = client.patch("/api/user/1/environmental-impact", json={"trees_saved": -1})
        assert response.status_code == 400


class TestGoals:

    def _create(self, client, target=3):
        return client.post("/api/user/1/goals", json={
            "goal_type": "daily",
            "target_type": "detections",
            "target_value": target,
            "title": "Three items today",
        }).json()

    def test_progress_completes_goal_at_target(self, client):
        goal = self._create(client)

        partial = client.patch(f"/api/goals/{goal['id']}/progress", json={"progress": 2}).json()
        assert partial["completed_at"] is None
        assert partial["is_active"] is True

        done = client.patch(f"/api/goals/{goal['id']}/progress", json={"progress": 3}).json()
        assert done["completed_at"] is not None
        assert done["is_active"] is False

    def test_manual_completion(self, client):
        goal = self._create(client, target=10)
        done = client.post(f"/api/goals/{goal['id']}/complete").json()
        assert done["completed_at"] is not None

    def test_missing_goal(self, client):
        assert client.post("/api/goals/404/complete").status_code == 404
        assert client.patch("/api/goals/404/progress", json={"progress": 1}).status_code == 404

    def test_invalid_goal_type(self, client):
        response = client.post("/api/user/1/goals", json={
            "goal_type": "yearly", "target_type": "detections", "target_value": 3, "title": "x"
        })
        assert response.status_code == 400


class TestReminders:

    def test_create_schedules_next_occurrence(self, client):
        response = client.post("/api/user/1/reminders", json={
            "reminder_type": "daily",
            "title": "Evening sort",
            "message": "Take the recycling out",
            "schedule_time": "19:00",
        })
        assert response.status_code == 200
        assert response.json()["next_scheduled"] is not None
        assert len(client.get("/api/user/1/reminders").json()) == 1

    def test_bad_schedule_time(self, client):
        response = client.post("/api/user/1/reminders", json={
            "reminder_type": "daily", "title": "x", "message": "y", "schedule_time": "25:00"
        })
        assert response.status_code == 400


class TestHabits:

    def test_insights(self, storage, demo_user):
        for day, count, slot in ((2, 3, "morning"), (3, 1, "morning"), (4, 2, "evening"), (9, 4, "morning")):
            analytics_service.create_habit_entry(storage, demo_user.id, HabitEntryCreate(
                date=datetime(2026, 3, day), detections_count=count, favorite_time=slot
            ))

        insights = analytics_service.get_habit_insights(storage, demo_user.id)

        assert insights.total_days_tracked == 4
        assert insights.average_daily_detections == 2.5
        assert insights.best_streak == 3
        assert insights.favorite_time == "morning"
        # 2026-03-02 is a Monday
        assert insights.weekday_pattern["monday"] == 7
        assert insights.weekday_pattern["sunday"] == 0

    def test_no_data(self, storage, demo_user):
        insights = analytics_service.get_habit_insights(storage, demo_user.id)
        assert insights.total_days_tracked == 0
        assert insights.best_streak == 0

    def test_range_query_endpoint(self, client):
        for day in (1, 5, 9):
            client.post("/api/user/1/habits", json={
                "date": f"2026-03-0{day}T00:00:00", "detections_count": day
            })
        response = client.get(
            "/api/user/1/habits",
            params={"start_date": "2026-03-02T00:00:00", "end_date": "2026-03-09T00:00:00"}
        )
        assert [h["detections_count"] for h in response.json()] == [9, 5]

    def test_dashboard_reports_current_streak(self, client, storage, demo_user):
        today = datetime.utcnow().date()
        storage.upsert_daily_habit(demo_user.id, today - timedelta(days=1), coins=8)
        storage.upsert_daily_habit(demo_user.id, today, coins=8)

        dashboard = client.get("/api/user/1/analytics-dashboard").json()

        assert dashboard["habits"]["current_streak"] == 2
        assert set(dashboard) == {"goals", "environmental_impact", "habits", "reminders"}
        assert dashboard["goals"]["completion_rate"] == 0
