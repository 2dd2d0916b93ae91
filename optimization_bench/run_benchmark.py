import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from optimization_bench.batch_executor import BatchExecutor
from optimization_bench.databases.config_manager import ConfigurationManager
from optimization_bench.databases.database_factory import DatabaseFactory
from optimization_bench.databases.types import DatabaseType
from optimization_bench.errors import CatalogError, ConnectionLost
from optimization_bench.reporting.report_builder import ReportBuilder
from optimization_bench.scenarios.catalog_loader import load_catalog

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SCENARIOS_FAILED = 1
EXIT_USAGE = 2
EXIT_CONNECTION_LOST = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="optimization-bench",
        description="Replay before/after SQL optimization scenarios and report the speedups.",
    )
    parser.add_argument("database_type", help=f"One of: {', '.join(DatabaseFactory.get_supported_database_types())}")
    parser.add_argument("catalog", help="YAML scenario catalog")
    parser.add_argument("--config-dir", default=None, help="Directory holding <database_type>.yaml")
    parser.add_argument("--output", default=None, help="Write the report to this file instead of stdout")
    parser.add_argument("--format", choices=("text", "json"), default="text")
    parser.add_argument("--timeout", type=float, default=None, help="Per-statement timeout in seconds")
    parser.add_argument("--explain", action="store_true", help="Capture plans of the timed statements")
    parser.add_argument("--parallel", action="store_true",
                        help="Run scenarios concurrently on isolated databases (no ordering guarantee)")
    parser.add_argument("--verbose", action="store_true")
    return parser


async def run(args: argparse.Namespace) -> int:
    try:
        database_type = DatabaseType.from_name(args.database_type)
    except ValueError:
        logger.error(f"Unsupported database type: {args.database_type}")
        logger.error(f"Available types: {', '.join(DatabaseFactory.get_supported_database_types())}")
        return EXIT_USAGE

    try:
        config = ConfigurationManager(args.config_dir).load_database_config(
            database_type,
            overrides={
                "statement_timeout_seconds": args.timeout,
                "explain": True if args.explain else None,
            },
        )
        registry = await load_catalog(args.catalog)
    except (FileNotFoundError, RuntimeError, CatalogError) as e:
        logger.error(f"Cannot start benchmark: {e}")
        return EXIT_USAGE

    executor = BatchExecutor(database_type=database_type, config=config)
    try:
        results = await executor.run_all(registry, parallel=args.parallel, ordered=not args.parallel)
    except ConnectionLost as e:
        logger.error(f"Benchmark aborted, connection lost: {e}")
        return EXIT_CONNECTION_LOST
    except ValueError as e:
        logger.error(f"Invalid database configuration: {e}")
        return EXIT_USAGE

    report = ReportBuilder()
    report.extend(results)
    await report.write(args.output or sys.stdout, fmt=args.format)

    all_passed = len(results) == len(registry) and all(result.passed for result in results)
    return EXIT_OK if all_passed else EXIT_SCENARIOS_FAILED


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
