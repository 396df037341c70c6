"""
Static dependency analysis for expression text.

The analyzer never evaluates anything. It runs a small lexical scanner over
the text that:
1. Skips string literals and comments (their content never matches), except
   the ``{...}`` replacement fields of f-strings, which are scanned as code
2. Tracks ()[]{} nesting and rejects unbalanced or mismatched delimiters
3. Finds calls ``name(`` where name is a known helper function
4. For ``get_sp(<string literal>, ...)`` records the literal as a system
   property name

Example:
    analyzer = ExpressionDependencyAnalyzer()
    result = analyzer.analyze("${get_sp('a.b.c') + get_sp(\"d.e\", 'x')}")
    # result.system_property_dependencies == {"a.b.c", "d.e"}
    # result.function_dependencies == {ScriptFunction.GET_SYSTEM_PROPERTY}
"""

import ast
import re
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import MalformedExpressionError
from .accumulator import Accumulator
from .functions import ScriptFunction

OPENING = {"(": ")", "[": "]", "{": "}"}
CLOSING = {")": "(", "]": "[", "}": "{"}
QUOTES = ("'", '"')
STRING_PREFIXES = {"r", "u", "b", "f", "br", "rb", "fr", "rf"}


@dataclass
class ScannedExpression:
    """Scanner output: text with literals/comments blanked, plus literal spans.

    ``fields`` holds (offset, code) for every f-string replacement field.
    """

    masked: str
    literals: dict[int, str] = field(default_factory=dict)
    fields: list[tuple[int, str]] = field(default_factory=list)


class ExpressionDependencyAnalyzer:
    """
    Discover system property and helper-function dependencies of an expression.

    Stateless: every call scans from scratch, so the same text always yields
    an equal Accumulator and instances can be shared across threads.
    """

    IDENTIFIER_PATTERN = re.compile(r"[A-Za-z_]\w*")
    CALL_PATTERN = re.compile(r"(?<![\w.])([A-Za-z_]\w*)\s*\(")

    def analyze(self, expression: Any) -> Accumulator:
        """
        Scan one expression.

        Args:
            expression: Raw expression text (non-string input has no dependencies)

        Returns:
            Accumulator with system property names and function dependencies

        Raises:
            MalformedExpressionError: If delimiters are unbalanced or mismatched
        """
        if not isinstance(expression, str) or not expression:
            return Accumulator.empty()

        scanned = self._scan(expression)

        properties: set[str] = set()
        functions: set[ScriptFunction] = set()
        for match in self.CALL_PATTERN.finditer(scanned.masked):
            function = ScriptFunction.from_name(match.group(1))
            if function is None:
                continue
            functions.add(function)
            if function is ScriptFunction.GET_SYSTEM_PROPERTY:
                name = self._first_literal_argument(expression, match.end(), scanned)
                if name:
                    properties.add(name)

        result = Accumulator(frozenset(properties), frozenset(functions))
        for offset, code in scanned.fields:
            try:
                result |= self.analyze(code)
            except MalformedExpressionError as e:
                raise MalformedExpressionError(expression, offset + e.position, e.reason) from e
        return result

    def _first_literal_argument(
        self, expression: str, position: int, scanned: ScannedExpression
    ) -> str | None:
        """Return the string literal starting the argument list at ``position``."""
        while position < len(expression) and expression[position].isspace():
            position += 1
        literal = scanned.literals.get(position)
        if literal is None:
            return None
        try:
            value = ast.literal_eval(literal)
        except (SyntaxError, ValueError):
            # f-strings and unterminated literals are not static names
            return None
        return value if isinstance(value, str) else None

    def _scan(self, expression: str) -> ScannedExpression:
        masked = list(expression)
        literals: dict[int, str] = {}
        fields: list[tuple[int, str]] = []
        stack: list[tuple[str, int]] = []
        length = len(expression)
        i = 0

        while i < length:
            char = expression[i]

            if char in QUOTES:
                end = self._string_end(expression, i)
                literals[i] = expression[i:end]
                self._blank(masked, i, end)
                i = end
                continue

            if char == "_" or char.isalpha():
                word = self.IDENTIFIER_PATTERN.match(expression, i)
                end = word.end() if word else i + 1
                if (
                    end < length
                    and expression[end] in QUOTES
                    and expression[i:end].lower() in STRING_PREFIXES
                ):
                    literal_end = self._string_end(expression, end)
                    literals[i] = expression[i:literal_end]
                    if "f" in expression[i:end].lower():
                        fields.extend(self._replacement_fields(expression, end, literal_end))
                    self._blank(masked, i, literal_end)
                    i = literal_end
                else:
                    i = end
                continue

            if char == "#":
                newline = expression.find("\n", i)
                end = length if newline == -1 else newline
                self._blank(masked, i, end)
                i = end
                continue

            if char in OPENING:
                stack.append((char, i))
            elif char in CLOSING:
                if not stack:
                    raise MalformedExpressionError(expression, i, f"unexpected '{char}'")
                opener, opened_at = stack.pop()
                if opener != CLOSING[char]:
                    raise MalformedExpressionError(
                        expression,
                        i,
                        f"'{char}' does not match '{opener}' opened at position {opened_at}",
                    )
            i += 1

        if stack:
            opener, opened_at = stack[-1]
            raise MalformedExpressionError(expression, opened_at, f"unclosed '{opener}'")

        return ScannedExpression(masked="".join(masked), literals=literals, fields=fields)

    @staticmethod
    def _string_end(expression: str, quote_at: int) -> int:
        """Index just past the literal whose opening quote is at ``quote_at``.

        Unterminated literals run to the end of the text.
        """
        quote = expression[quote_at]
        delimiter = quote * 3 if expression.startswith(quote * 3, quote_at) else quote
        i = quote_at + len(delimiter)
        while i < len(expression):
            if expression[i] == "\\":
                i += 2
                continue
            if expression.startswith(delimiter, i):
                return i + len(delimiter)
            i += 1
        return len(expression)

    def _replacement_fields(
        self, expression: str, quote_at: int, literal_end: int
    ) -> list[tuple[int, str]]:
        """(offset, code) of each ``{...}`` field of the f-string opening at ``quote_at``."""
        quote = expression[quote_at]
        delimiter = quote * 3 if expression.startswith(quote * 3, quote_at) else quote
        start = quote_at + len(delimiter)
        end = literal_end
        if end - len(delimiter) >= start and expression.startswith(delimiter, end - len(delimiter)):
            end -= len(delimiter)

        fields: list[tuple[int, str]] = []
        depth = 0
        field_start = start
        i = start
        while i < end:
            char = expression[i]
            if depth == 0:
                if expression.startswith("{{", i) or expression.startswith("}}", i):
                    i += 2
                    continue
                if char == "{":
                    depth = 1
                    field_start = i + 1
            elif char in QUOTES:
                i = self._string_end(expression, i)
                continue
            elif char in OPENING:
                depth += 1
            elif char in CLOSING:
                depth -= 1
                if depth == 0:
                    fields.append((field_start, expression[field_start:i]))
            i += 1

        if depth:
            fields.append((field_start, expression[field_start:end]))
        return fields

    @staticmethod
    def _blank(masked: list[str], start: int, end: int) -> None:
        for index in range(start, min(end, len(masked))):
            masked[index] = " "


_default_analyzer = ExpressionDependencyAnalyzer()


def analyze_expression(expression: Any) -> Accumulator:
    """Analyze one expression with the shared stateless analyzer."""
    return _default_analyzer.analyze(expression)


def analyze_expressions(expressions: Any) -> Accumulator:
    """Analyze several expressions and merge the results."""
    return Accumulator.union(analyze_expression(expression) for expression in expressions)


__all__ = [
    "ExpressionDependencyAnalyzer",
    "analyze_expression",
    "analyze_expressions",
]
