"""Splits SQL scripts into individually executable statements."""

import logging
import re
from typing import List, Optional

from migration_engine.domain.exceptions import InputValidationError

logger = logging.getLogger(__name__)

_DOLLAR_TAG = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)?\$")


class AmbiguousScriptError(Exception):
    """Raised internally when the scanner cannot trust its own state."""


class SqlTokenizer:
    """
    Character-level SQL statement splitter.
    Single Responsibility: statement boundaries only, no parsing.

    A ``;`` ends a statement only when it is outside quoted strings
    (single, double and PostgreSQL dollar quoting), outside line and block
    comments, and at parenthesis depth zero.
    """

    def split(self, script: str) -> List[str]:
        """Return the statements of ``script`` without their terminators."""
        if not isinstance(script, str):
            raise InputValidationError("script must be a string")
        if not script.strip():
            return []

        try:
            statements = self._scan(script)
        except AmbiguousScriptError as e:
            logger.warning(f"[SqlTokenizer] Falling back to naive semicolon splitting: {e}")
            return self.naive_split(script)
        except Exception as e:
            logger.warning(f"[SqlTokenizer] Scanner failed, falling back to naive semicolon splitting: {e}")
            return self.naive_split(script)

        logger.debug(f"[SqlTokenizer] Split {len(script)} chars into {len(statements)} statements")
        return statements

    @staticmethod
    def naive_split(script: str) -> List[str]:
        """Plain semicolon split, used when the scanner gives up."""
        return [part.strip() for part in script.split(";") if part.strip()]

    @staticmethod
    def join(statements: List[str]) -> str:
        """Inverse of ``split``: restore the statement separators."""
        return "".join(
            # a terminator after a trailing line comment would be commented out
            f"{statement}\n;\n" if "--" in statement.rsplit("\n", 1)[-1] else f"{statement};\n"
            for statement in statements
        )

    def _scan(self, script: str) -> List[str]:
        statements: List[str] = []
        buf: List[str] = []
        code_seen = False

        quote: Optional[str] = None      # ' or " while inside a quoted string
        dollar_tag: Optional[str] = None  # $tag$ while inside a dollar-quoted body
        in_block_comment = False
        in_line_comment = False
        depth = 0

        i = 0
        n = len(script)
        while i < n:
            ch = script[i]
            nxt = script[i + 1] if i + 1 < n else ""

            if in_line_comment:
                buf.append(ch)
                if ch == "\n":
                    in_line_comment = False
                i += 1
                continue

            if in_block_comment:
                if ch == "*" and nxt == "/":
                    buf.append("*/")
                    in_block_comment = False
                    i += 2
                    continue
                buf.append(ch)
                i += 1
                continue

            if quote:
                buf.append(ch)
                if ch == quote:
                    if nxt == quote:
                        # doubled quote is an escaped quote
                        buf.append(nxt)
                        i += 2
                        continue
                    quote = None
                i += 1
                continue

            if dollar_tag:
                if script.startswith(dollar_tag, i):
                    buf.append(dollar_tag)
                    i += len(dollar_tag)
                    dollar_tag = None
                    continue
                buf.append(ch)
                i += 1
                continue

            if ch in ("'", '"'):
                quote = ch
                code_seen = True
                buf.append(ch)
            elif ch == "$" and _DOLLAR_TAG.match(script, i):
                dollar_tag = _DOLLAR_TAG.match(script, i).group(0)
                code_seen = True
                buf.append(dollar_tag)
                i += len(dollar_tag)
                continue
            elif ch == "-" and nxt == "-":
                in_line_comment = True
                buf.append("--")
                i += 2
                continue
            elif ch == "/" and nxt == "*":
                in_block_comment = True
                buf.append("/*")
                i += 2
                continue
            elif ch == "(":
                depth += 1
                code_seen = True
                buf.append(ch)
            elif ch == ")":
                depth -= 1
                if depth < 0:
                    raise AmbiguousScriptError(f"unbalanced ')' at offset {i}")
                buf.append(ch)
            elif ch == ";" and depth == 0:
                self._flush(buf, code_seen, statements)
                buf = []
                code_seen = False
            else:
                if not ch.isspace():
                    code_seen = True
                buf.append(ch)
            i += 1

        if quote or dollar_tag or in_block_comment:
            logger.warning("[SqlTokenizer] Script ends inside a string or comment; keeping remainder as one statement")
        self._flush(buf, code_seen, statements)
        return statements

    @staticmethod
    def _flush(buf: List[str], code_seen: bool, statements: List[str]) -> None:
        statement = "".join(buf).strip()
        # fragments made only of comments are dropped
        if statement and code_seen:
            statements.append(statement)
