import logging
from typing import Any, Dict, List, Optional, Type
from sqlalchemy.orm import Session
from faker import Faker

from .base import BaseSeeder

logger = logging.getLogger(__name__)

class SeederRegistry:
    """Registry to manage and execute registered seeders."""

    _seeders: List[Type[BaseSeeder]] = []

    @classmethod
    def register(cls, seeder_cls: Type[BaseSeeder]):
        """Decorator to register a seeder class."""
        if seeder_cls not in cls._seeders:
            cls._seeders.append(seeder_cls)
        return seeder_cls

    @classmethod
    def seeders(cls, *, include_demo: bool = False) -> List[Type[BaseSeeder]]:
        selected = [s for s in cls._seeders if include_demo or s.priority < 500]
        return sorted(selected, key=lambda x: x.priority)

    @classmethod
    def run_all(
        cls,
        session: Session,
        *,
        tenant_id: str = "default",
        include_demo: bool = False,
        options: Optional[Dict[str, Any]] = None,
        seed: Optional[int] = None,
    ) -> List[str]:
        """Run registered seeders in priority order; returns the names that ran."""
        fake = Faker()
        if seed is not None:
            fake.seed_instance(seed)

        sorted_seeders = cls.seeders(include_demo=include_demo)

        total = len(sorted_seeders)
        logger.info(f"Starting seeding process for tenant {tenant_id}. {total} seeders selected.")

        ran: List[str] = []
        for index, seeder_cls in enumerate(sorted_seeders, 1):
            seeder = seeder_cls(session, fake, tenant_id=tenant_id, options=options)
            try:
                seeder.log(f"Running ({index}/{total})...")
                seeder.run()
                session.commit()
                seeder.log("Completed.")
            except Exception as e:
                session.rollback()
                logger.error(f"Seeder {seeder_cls.__name__} failed: {e}")
                raise
            ran.append(seeder_cls.__name__)
        return ran
