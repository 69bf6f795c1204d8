"""
Manager Registry

Bookkeeping of the manager actors known to the supervisor: the expertise
areas each covers, the agents it currently manages (its load), a performance
score used as a tie-breaker, and an availability flag.

Records are created on a manager's registration notification and updated on
load changes. They are never deleted, only marked unavailable.

All mutation goes through the registry's methods, which hold a lock. Queries
work on a snapshot taken under the same lock, so ``assign_manager_for_expertise``
is read-only and safe to call from any task or thread.
"""

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Set

from ..models.constants import AgentExpertise, parse_expertise

logger = logging.getLogger(__name__)


DEFAULT_MANAGER_CAPACITY = 5
DEFAULT_PERFORMANCE = 0.8


@dataclass
class ManagerRecord:
    """State tracked for one manager.

    Attributes:
        manager_id: Unique manager identifier
        expertise: Expertise areas the manager covers
        managed_agents: IDs of agents the manager currently runs
        performance: Score in [0, 1], higher is better
        availability: Whether the manager accepts new work
    """
    manager_id: str
    expertise: Set[AgentExpertise] = field(default_factory=set)
    managed_agents: List[str] = field(default_factory=list)
    performance: float = DEFAULT_PERFORMANCE
    availability: bool = True

    @property
    def load(self) -> int:
        return len(self.managed_agents)

    def covers(self, expertise: AgentExpertise) -> bool:
        return expertise in self.expertise

    def to_dict(self) -> Dict[str, object]:
        return {
            "manager_id": self.manager_id,
            "expertise": sorted(e.value for e in self.expertise),
            "managed_agents": list(self.managed_agents),
            "performance": self.performance,
            "availability": self.availability,
        }


def placeholder_manager_id() -> str:
    return f"manager-placeholder-{int(time.time() * 1000)}"


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class ManagerRegistry:
    """
    Registry of managers with the load-balancing assignment policy.

    Args:
        capacity: Soft cap on managed agents before a manager stops being
            preferred for its expertise
    """

    def __init__(self, capacity: int = DEFAULT_MANAGER_CAPACITY):
        self.capacity = capacity
        self._managers: Dict[str, ManagerRecord] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def register_manager(
        self,
        manager_id: str,
        expertise: Iterable,
        performance: float = DEFAULT_PERFORMANCE,
        availability: bool = True,
    ) -> ManagerRecord:
        """
        Register a manager, or refresh an existing record.

        Re-registration replaces the expertise set and availability but keeps
        the current managed agents. Unknown expertise tags are dropped.

        Returns:
            A copy of the stored record
        """
        parsed = {e for e in (parse_expertise(tag, default=None) for tag in expertise) if e is not None}

        with self._lock:
            record = self._managers.get(manager_id)
            if record is None:
                record = ManagerRecord(
                    manager_id=manager_id,
                    expertise=parsed,
                    performance=_clamp(performance),
                    availability=availability,
                )
                self._managers[manager_id] = record
                logger.info(
                    f"[ManagerRegistry] Registered {manager_id} "
                    f"for {sorted(e.value for e in parsed)}"
                )
            else:
                record.expertise = parsed
                record.availability = availability
                logger.info(f"[ManagerRegistry] Refreshed registration for {manager_id}")
            return self._copy(record)

    def update_managed_agents(self, manager_id: str, agent_ids: Iterable[str]) -> Optional[ManagerRecord]:
        """Replace a manager's managed agent list. Unknown ids are a logged no-op."""
        with self._lock:
            record = self._require(manager_id, "update_managed_agents")
            if record is None:
                return None
            record.managed_agents = list(dict.fromkeys(agent_ids))
            return self._copy(record)

    def add_managed_agent(self, manager_id: str, agent_id: str) -> Optional[ManagerRecord]:
        with self._lock:
            record = self._require(manager_id, "add_managed_agent")
            if record is None:
                return None
            if agent_id not in record.managed_agents:
                record.managed_agents.append(agent_id)
            return self._copy(record)

    def remove_managed_agent(self, manager_id: str, agent_id: str) -> Optional[ManagerRecord]:
        with self._lock:
            record = self._require(manager_id, "remove_managed_agent")
            if record is None:
                return None
            if agent_id in record.managed_agents:
                record.managed_agents.remove(agent_id)
            return self._copy(record)

    def set_availability(self, manager_id: str, available: bool) -> Optional[ManagerRecord]:
        with self._lock:
            record = self._require(manager_id, "set_availability")
            if record is None:
                return None
            record.availability = available
            logger.info(f"[ManagerRegistry] {manager_id} availability -> {available}")
            return self._copy(record)

    def update_performance(self, manager_id: str, performance: float) -> Optional[ManagerRecord]:
        with self._lock:
            record = self._require(manager_id, "update_performance")
            if record is None:
                return None
            record.performance = _clamp(performance)
            return self._copy(record)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_manager(self, manager_id: str) -> Optional[ManagerRecord]:
        with self._lock:
            record = self._managers.get(manager_id)
            return self._copy(record) if record else None

    def has_manager(self, manager_id: str) -> bool:
        with self._lock:
            return manager_id in self._managers

    def list_managers(self) -> List[ManagerRecord]:
        with self._lock:
            return [self._copy(record) for record in self._managers.values()]

    def assign_manager_for_expertise(self, expertise: AgentExpertise) -> str:
        """
        Select a manager for an expertise area.

        Precedence:
        1. Available manager covering the expertise and under capacity
        2. Available manager covering the expertise with the best performance
        3. Any available manager, fewest managed agents first
        4. Placeholder id (degraded mode, never an error)

        Args:
            expertise: Required expertise

        Returns:
            Manager id, possibly a ``manager-placeholder-<ms>`` id
        """
        managers = self.list_managers()
        available = [m for m in managers if m.availability]
        experts = [m for m in available if m.covers(expertise)]

        for manager in experts:
            if manager.load < self.capacity:
                return manager.manager_id

        if experts:
            best = max(experts, key=lambda m: m.performance)
            logger.info(
                f"[ManagerRegistry] All {expertise.value} managers at capacity, "
                f"choosing best performer {best.manager_id}"
            )
            return best.manager_id

        if available:
            generalist = min(available, key=lambda m: m.load)
            logger.warning(
                f"[ManagerRegistry] No manager covers {expertise.value}, "
                f"falling back to least loaded {generalist.manager_id}"
            )
            return generalist.manager_id

        placeholder = placeholder_manager_id()
        logger.warning(f"[ManagerRegistry] No available managers, using placeholder {placeholder}")
        return placeholder

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, manager_id: str, operation: str) -> Optional[ManagerRecord]:
        record = self._managers.get(manager_id)
        if record is None:
            logger.warning(f"[ManagerRegistry] {operation}: unknown manager {manager_id}")
        return record

    @staticmethod
    def _copy(record: ManagerRecord) -> ManagerRecord:
        return replace(record, expertise=set(record.expertise), managed_agents=list(record.managed_agents))
