"""
Achievement Service - unlocks milestone badges from user stats
"""
import logging
from typing import List

from ecolens.schemas.schemas import Achievement, AchievementCreate, Stats
from ecolens.storage.base import Storage

logger = logging.getLogger(__name__)


# (type, title, description, icon, predicate)
ACHIEVEMENTS = [
    ("first_detection", "First Steps", "Made your first recycling detection!", "star",
     lambda s: s.total_detections >= 1),
    ("detection_10", "Eco Detective", "Completed 10 recycling detections!", "badge",
     lambda s: s.total_detections >= 10),
    ("detection_100", "Recycling Champion", "Completed 100 recycling detections!", "trophy",
     lambda s: s.total_detections >= 100),
    ("coins_100", "Coin Collector", "Earned 100 green coins!", "coins",
     lambda s: s.total_coins_earned >= 100),
    ("streak_7", "Week Warrior", "Recycled 7 days in a row!", "flame",
     lambda s: s.streak_days >= 7),
]


class AchievementService:

    def check_and_award(self, storage: Storage, user_id: int, stats: Stats) -> List[Achievement]:
        """Persist every newly satisfied achievement; each type unlocks once"""
        unlocked = {a.achievement_type for a in storage.get_user_achievements(user_id)}
        awarded = []
        for achievement_type, title, description, icon, earned in ACHIEVEMENTS:
            if achievement_type in unlocked or not earned(stats):
                continue
            awarded.append(storage.create_achievement(AchievementCreate(
                user_id=user_id,
                achievement_type=achievement_type,
                title=title,
                description=description,
                icon_type=icon
            )))
            logger.info(f"User {user_id} unlocked achievement {achievement_type}")
        return awarded


achievement_service = AchievementService()
