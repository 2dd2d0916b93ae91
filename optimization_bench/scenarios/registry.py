import dataclasses
import logging
from typing import Dict, Iterator, List, Optional

from optimization_bench.errors import DuplicateScenario
from optimization_bench.scenarios.scenario import Scenario

logger = logging.getLogger(__name__)


class ScenarioView:
    """Restartable, read-only view over the registry in insertion order."""

    def __init__(self, order: List[str], scenarios: Dict[str, Scenario]):
        self._order = order
        self._scenarios = scenarios

    def __iter__(self) -> Iterator[Scenario]:
        # Every call yields a fresh generator so the view can be walked again
        return (self._scenarios[scenario_id] for scenario_id in self._order)

    def __len__(self) -> int:
        return len(self._order)


class ScenarioRegistry:
    """Holds the named optimization scenarios in the order they were registered."""

    def __init__(self):
        self._order: List[str] = []
        self._scenarios: Dict[str, Scenario] = {}

    def register(self, scenario: Scenario) -> Scenario:
        if scenario.scenario_id in self._scenarios:
            raise DuplicateScenario(scenario.scenario_id)

        stored = dataclasses.replace(scenario)
        self._scenarios[stored.scenario_id] = stored
        self._order.append(stored.scenario_id)
        logger.debug(f"Registered scenario {stored.scenario_id} "
                     f"({stored.statement_count()} statements)")
        return stored

    def list(self) -> ScenarioView:
        return ScenarioView(self._order, self._scenarios)

    def get(self, scenario_id: str) -> Optional[Scenario]:
        return self._scenarios.get(scenario_id)

    def index_of(self, scenario_id: str) -> int:
        return self._order.index(scenario_id)

    def __contains__(self, scenario_id: str) -> bool:
        return scenario_id in self._scenarios

    def __len__(self) -> int:
        return len(self._order)
