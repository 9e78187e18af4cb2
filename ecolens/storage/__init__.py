"""
Storage package - record store backends
"""
import logging

from ecolens.config import settings
from ecolens.storage.base import Storage
from ecolens.storage.memory import MemStorage

logger = logging.getLogger(__name__)


def create_storage(backend: str = None) -> Storage:
    """Build the backend named by STORAGE_BACKEND ("memory" or "database")"""
    backend = (backend or settings.STORAGE_BACKEND).lower()
    if backend == "database":
        from ecolens.storage.database import DatabaseStorage
        logger.info("Using SQLAlchemy storage backend")
        return DatabaseStorage()
    if backend != "memory":
        logger.warning(f"Unknown STORAGE_BACKEND '{backend}', falling back to memory")
    logger.info("Using in-memory storage backend")
    return MemStorage()


__all__ = ["Storage", "MemStorage", "create_storage"]
