from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session
from faker import Faker
import logging

logger = logging.getLogger(__name__)

class BaseSeeder(ABC):
    """
    Abstract base class for all data seeders.

    Attributes:
        priority (int): Execution order priority (lower runs first).
                        Core data (tenant, admin, super group) uses 0-100.
                        Demo data uses 500+ and only runs when requested.
    """
    priority: int = 100

    def __init__(
        self,
        session: Session,
        fake: Optional[Faker] = None,
        *,
        tenant_id: str = "default",
        options: Optional[Dict[str, Any]] = None,
    ):
        self.session = session
        self.fake = fake or Faker()
        self.tenant_id = tenant_id
        self.options = options or {}

    @abstractmethod
    def run(self):
        """Execute the seeding logic."""
        pass

    def log(self, message: str):
        """Helper to log seeding progress."""
        logger.info(f"[{self.__class__.__name__}] {message}")
