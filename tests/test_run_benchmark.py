import json
import textwrap

import pytest

from optimization_bench.run_benchmark import (
    EXIT_OK,
    EXIT_SCENARIOS_FAILED,
    EXIT_USAGE,
    main,
)


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    monkeypatch.delenv("OPTBENCH_STATEMENT_TIMEOUT", raising=False)
    directory = tmp_path / "configs"
    directory.mkdir()
    (directory / "duckdb.yaml").write_text("database_path: ':memory:'\nstatement_timeout_seconds: 30\n")
    return directory


def write_catalog(tmp_path, body):
    path = tmp_path / "catalog.yaml"
    path.write_text(textwrap.dedent(body))
    return path


class TestRunBenchmark:

    def test_successful_run_writes_json_report(self, tmp_path, config_dir):
        catalog = write_catalog(tmp_path, """
            scenarios:
              - id: count-rows
                setup: CREATE TABLE t AS SELECT i FROM range(0, 1000) t(i)
                before: SELECT COUNT(*) FROM t
                after: SELECT COUNT(*) FROM t
        """)
        output = tmp_path / "report.json"

        code = main(["duckdb", str(catalog), "--config-dir", str(config_dir),
                     "--output", str(output), "--format", "json"])

        assert code == EXIT_OK
        records = json.loads(output.read_text())
        assert records[0]["scenario"] == "count-rows"
        assert records[0]["verdict"] == "PASS"

    def test_failed_scenario_sets_exit_code(self, tmp_path, config_dir):
        catalog = write_catalog(tmp_path, """
            scenarios:
              - id: broken
                setup: CREATE TABLE nope AS SELECT * FROM does_not_exist
                before: SELECT 1
                after: SELECT 1
        """)
        output = tmp_path / "report.txt"

        code = main(["duckdb", str(catalog), "--config-dir", str(config_dir), "--output", str(output)])

        assert code == EXIT_SCENARIOS_FAILED
        assert "FAILED" in output.read_text()

    def test_unknown_database_type(self, tmp_path, config_dir):
        catalog = write_catalog(tmp_path, "scenarios: []\n")
        assert main(["oracle", str(catalog), "--config-dir", str(config_dir)]) == EXIT_USAGE

    def test_missing_catalog(self, tmp_path, config_dir):
        assert main(["duckdb", str(tmp_path / "none.yaml"), "--config-dir", str(config_dir)]) == EXIT_USAGE
