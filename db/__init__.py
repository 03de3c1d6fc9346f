from db.models import REQUIRED_BOOT_TABLES
from db.repository import InMemoryRepository, Repository
from db.session import SessionManager

__all__ = ["InMemoryRepository", "Repository", "SessionManager", "REQUIRED_BOOT_TABLES"]
