"""
User Service - demo account bootstrap and profile edits
"""
import logging

from ecolens.config import settings
from ecolens.schemas.schemas import User, UserCreate
from ecolens.storage.base import Storage

logger = logging.getLogger(__name__)


class UserService:

    def get_or_create_demo_user(self, storage: Storage) -> User:
        user = storage.get_user_by_id(settings.DEMO_USER_ID)
        if user is None:
            user = storage.get_user_by_username(settings.DEMO_USERNAME)
        if user is None:
            user = storage.create_user(UserCreate(
                username=settings.DEMO_USERNAME,
                email=settings.DEMO_EMAIL,
                firebase_uid=settings.DEMO_FIREBASE_UID
            ))
            logger.info(f"Seeded demo user {user.id}")
        return user

    def update_profile(self, storage: Storage, user_id: int, username: str, email: str) -> User:
        return storage.update_user(user_id, username=username, email=email)


user_service = UserService()
