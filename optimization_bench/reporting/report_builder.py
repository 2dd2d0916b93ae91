import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Union

import aiofiles

from optimization_bench.results.comparison_result import ComparisonResult, Verdict
from optimization_bench.results.measurement import Measurement

logger = logging.getLogger(__name__)

COLUMNS = ("scenario", "before_ms", "after_ms", "speedup", "expected", "verdict")
NOT_AVAILABLE = "n/a"


class ReportBuilder:
    """
    Collects comparison results and renders them as a table or as JSON.

    Rows are kept in the order they were added, which is the registry order
    when fed by the batch executor, so the same results always render to the
    same bytes.
    """

    def __init__(self):
        self._results: List[ComparisonResult] = []

    def add(self, result: ComparisonResult) -> None:
        self._results.append(result)

    def extend(self, results: List[ComparisonResult]) -> None:
        for result in results:
            self.add(result)

    def __len__(self) -> int:
        return len(self._results)

    def records(self) -> List[Dict[str, Any]]:
        """One structured row per scenario."""
        return [self._record(result) for result in self._results]

    def render(self, fmt: str = "text") -> str:
        if fmt == "text":
            return self._render_text()
        if fmt == "json":
            return json.dumps(self.records(), indent=2, sort_keys=True) + "\n"
        raise ValueError(f"Unknown report format: {fmt}")

    async def write(self, sink: Union[str, Path, TextIO], fmt: str = "text") -> None:
        """Write the rendered report to a file path or to an open text stream."""
        rendered = self.render(fmt)
        if isinstance(sink, (str, Path)):
            async with aiofiles.open(sink, "w") as f:
                await f.write(rendered)
            logger.info(f"Report with {len(self._results)} scenarios written to {sink}")
        else:
            sink.write(rendered)
            sink.flush()

    def summary(self) -> Dict[str, int]:
        counts = {verdict.value: 0 for verdict in Verdict}
        for result in self._results:
            counts[result.verdict.value] += 1
        return counts

    @staticmethod
    def _record(result: ComparisonResult) -> Dict[str, Any]:
        before = result.before
        after = result.after
        return {
            "scenario": result.scenario_id,
            "description": result.description,
            "before_ms": round(before.duration_ms, 3) if before is not None else None,
            "after_ms": round(after.duration_ms, 3) if after is not None else None,
            "before_rows": before.row_count if before is not None else None,
            "after_rows": after.row_count if after is not None else None,
            "speedup": round(result.speedup, 3) if result.speedup is not None else None,
            "expected_min_speedup": result.expected_min_speedup,
            "passed": result.passed,
            "verdict": result.verdict.value,
            "error": result.error_summary,
            "before_plan": before.plan if before is not None else None,
            "after_plan": after.plan if after is not None else None,
        }

    def _render_text(self) -> str:
        rows = [COLUMNS]
        for result in self._results:
            rows.append((
                result.scenario_id,
                _format_ms(result.before),
                _format_ms(result.after),
                f"{result.speedup:.2f}x" if result.speedup is not None else NOT_AVAILABLE,
                f">={result.expected_min_speedup:g}x" if result.expected_min_speedup is not None else "-",
                result.verdict.value,
            ))

        widths = [max(len(row[i]) for row in rows) for i in range(len(COLUMNS))]
        lines = []
        for position, row in enumerate(rows):
            cells = [row[0].ljust(widths[0])] + [cell.rjust(width) for cell, width in zip(row[1:], widths[1:])]
            lines.append("  ".join(cells).rstrip())
            if position == 0:
                lines.append("  ".join("-" * width for width in widths))

        errors = [(result.scenario_id, result.error_summary) for result in self._results
                  if result.error_summary is not None]
        if errors:
            lines.append("")
            for scenario_id, message in errors:
                lines.append(f"{scenario_id}: {message}")

        counts = self.summary()
        lines.append("")
        lines.append(", ".join(f"{verdict}: {count}" for verdict, count in counts.items()))
        return "\n".join(lines) + "\n"


def _format_ms(measurement: Optional[Measurement]) -> str:
    if measurement is None:
        return NOT_AVAILABLE
    if not measurement.succeeded:
        return measurement.error_kind
    return f"{measurement.duration_ms:.2f}"
