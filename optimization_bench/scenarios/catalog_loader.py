import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import aiofiles
import yaml

from optimization_bench.errors import CatalogError
from optimization_bench.scenarios.registry import ScenarioRegistry
from optimization_bench.scenarios.scenario import Scenario
from optimization_bench.scenarios.sql_script import split_sql_script

logger = logging.getLogger(__name__)

CATALOG_DIR = Path(__file__).parent / "catalogs"


async def load_catalog(catalog_path: Union[str, Path],
                       registry: Optional[ScenarioRegistry] = None) -> ScenarioRegistry:
    """
    Load a YAML scenario catalog and register every scenario it defines.

    Scenarios are registered in document order, which is also the order in
    which they will be executed and reported.
    """
    catalog_path = Path(catalog_path)
    try:
        async with aiofiles.open(catalog_path, "r") as f:
            content = await f.read()
    except FileNotFoundError:
        raise CatalogError(f"Catalog file {catalog_path} does not exist")

    registry = registry if registry is not None else ScenarioRegistry()
    for scenario in parse_catalog(content, source=str(catalog_path)):
        registry.register(scenario)

    logger.info(f"Loaded {len(registry)} scenarios from {catalog_path}")
    return registry


def parse_catalog(content: str, source: str = "<string>") -> List[Scenario]:
    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise CatalogError(f"YAML parsing error in {source}: {e}")

    if not isinstance(document, dict) or not isinstance(document.get("scenarios"), list):
        raise CatalogError(f"Catalog {source} must contain a 'scenarios' list")

    scenarios = []
    for position, entry in enumerate(document["scenarios"]):
        if not isinstance(entry, dict):
            raise CatalogError(f"Entry {position + 1} in {source} is not a mapping")
        scenarios.append(_build_scenario(entry, position, source))
    return scenarios


def _build_scenario(entry: Dict[str, Any], position: int, source: str) -> Scenario:
    scenario_id = entry.get("id")
    if not scenario_id:
        raise CatalogError(f"Entry {position + 1} in {source} has no 'id'")
    scenario_id = str(scenario_id)

    before = _single_statement(entry, "before", scenario_id)
    after = _single_statement(entry, "after", scenario_id)

    expected = entry.get("expected_min_speedup")
    if expected is not None:
        try:
            expected = float(expected)
        except (TypeError, ValueError):
            raise CatalogError(f"'{scenario_id}': expected_min_speedup must be a number, got {expected!r}")

    try:
        return Scenario(
            scenario_id=scenario_id,
            before=before,
            after=after,
            setup=_statement_group(entry.get("setup"), "setup", scenario_id),
            remediation=_statement_group(entry.get("remediation"), "remediation", scenario_id),
            expected_min_speedup=expected,
            description=str(entry.get("description") or "").strip(),
            explain=bool(entry.get("explain", False)),
        )
    except ValueError as e:
        raise CatalogError(str(e)) from e


def _single_statement(entry: Dict[str, Any], key: str, scenario_id: str) -> str:
    statements = _statement_group(entry.get(key), key, scenario_id)
    if len(statements) != 1:
        raise CatalogError(
            f"'{scenario_id}': '{key}' must hold exactly one statement, found {len(statements)}"
        )
    return statements[0]


def _statement_group(raw: Any, key: str, scenario_id: str) -> Tuple[str, ...]:
    """Accepts either a list of statements or one script string holding several."""
    if raw is None:
        return ()
    if isinstance(raw, str):
        items = [raw]
    elif isinstance(raw, list):
        items = raw
    else:
        raise CatalogError(f"'{scenario_id}': '{key}' must be a string or a list of strings")

    statements: List[str] = []
    for item in items:
        if not isinstance(item, str):
            raise CatalogError(f"'{scenario_id}': every '{key}' statement must be a string")
        try:
            statements.extend(split_sql_script(item))
        except ValueError as e:
            raise CatalogError(f"'{scenario_id}': cannot split '{key}': {e}") from e
    return tuple(statements)
