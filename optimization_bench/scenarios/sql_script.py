import logging
import re
from typing import List

logger = logging.getLogger(__name__)

_DOLLAR_TAG = re.compile(r"\$[A-Za-z_][A-Za-z0-9_]*\$|\$\$")


def split_sql_script(script: str) -> List[str]:
    """
    Split a SQL script into individual statements.

    Comments (`--` and `/* */`) are dropped and the script is split on `;`.
    Semicolons inside quoted literals, quoted identifiers and dollar-quoted
    bodies (`DO $$ ... $$`) do not end a statement.
    """
    statements: List[str] = []
    current: List[str] = []
    i = 0
    length = len(script)

    while i < length:
        char = script[i]

        if script.startswith("--", i):
            end = script.find("\n", i)
            i = length if end == -1 else end
            continue

        if script.startswith("/*", i):
            end = script.find("*/", i + 2)
            if end == -1:
                raise ValueError("Unterminated block comment in SQL script")
            i = end + 2
            current.append(" ")
            continue

        if char in ("'", '"'):
            end = _find_closing_quote(script, i)
            current.append(script[i:end])
            i = end
            continue

        if char == "$":
            match = _DOLLAR_TAG.match(script, i)
            if match:
                tag = match.group(0)
                end = script.find(tag, match.end())
                if end == -1:
                    raise ValueError(f"Unterminated dollar-quoted body {tag} in SQL script")
                end += len(tag)
                current.append(script[i:end])
                i = end
                continue

        if char == ";":
            _flush(current, statements)
            current = []
            i += 1
            continue

        current.append(char)
        i += 1

    _flush(current, statements)
    logger.debug(f"Split SQL script into {len(statements)} statements")
    return statements


def _find_closing_quote(script: str, start: int) -> int:
    """Index right after the quote closing the literal opened at `start`."""
    quote = script[start]
    i = start + 1
    while i < len(script):
        if script[i] == quote:
            # A doubled quote is an escaped quote
            if i + 1 < len(script) and script[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    raise ValueError(f"Unterminated {quote} quote in SQL script")


def _flush(current: List[str], statements: List[str]) -> None:
    statement = "".join(current).strip()
    if statement:
        statements.append(statement)
