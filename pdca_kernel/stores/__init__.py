"""Store adapters implementing the ports in ``pdca_kernel.domain.ports``."""

from pdca_kernel.stores.in_memory import InMemoryGoalRepository
from pdca_kernel.stores.sql_store import SqlGoalRepository

__all__ = ["InMemoryGoalRepository", "SqlGoalRepository"]
