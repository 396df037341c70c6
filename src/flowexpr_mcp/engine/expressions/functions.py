"""Helper functions injectable into the expression evaluation context.

Each ScriptFunction variant maps to a fixed Python source fragment. The
fragments run inside the evaluation sandbox, so they may only use the
sandbox's builtins. Helpers that read context entries indirectly report the
name they read through the ``accessed(key)`` hook.

Declaration order of ScriptFunction is the canonical order used when
assembling the function bundle.
"""

from collections.abc import Iterable
from enum import Enum

from ...sandbox import ACCESS_HOOK, SYSTEM_PROPERTIES_MAP


class ScriptFunction(Enum):
    """Closed set of helper functions, valued by their callable name."""

    GET = "get"
    GET_SYSTEM_PROPERTY = "get_sp"
    CHECK_EMPTY = "check_empty"
    CS_APPEND = "cs_append"
    CS_PREPEND = "cs_prepend"
    CS_EXTRACT_NUMBER = "cs_extract_number"
    CS_REPLACE = "cs_replace"
    CS_ROUND = "cs_round"
    CS_SUBSTRING = "cs_substring"
    CS_TO_LOWER = "cs_to_lower"
    CS_TO_UPPER = "cs_to_upper"

    @classmethod
    def from_name(cls, name: str) -> "ScriptFunction | None":
        """Look up a variant by callable name (None if unknown)."""
        return _BY_NAME.get(name)

    @classmethod
    def names(cls) -> frozenset[str]:
        return frozenset(_BY_NAME)


_BY_NAME: dict[str, ScriptFunction] = {function.value: function for function in ScriptFunction}

# No-op hook for backends that do not track accessed names
ACCESS_HOOK_STUB = "def accessed(key):\n  pass"

FUNCTION_DELIMITER = "\n\n"

_SCRIPTS: dict[ScriptFunction, str] = {
    ScriptFunction.GET: (
        "def get(key, default_value=None):\n"
        "    accessed(key)\n"
        "    value = context_lookup(key)\n"
        "    return default_value if value is None else value"
    ),
    ScriptFunction.GET_SYSTEM_PROPERTY: (
        "def get_sp(key, default_value=None):\n"
        "    accessed(key)\n"
        "    property_value = sys_prop.get(key)\n"
        "    return default_value if property_value is None else property_value"
    ),
    ScriptFunction.CHECK_EMPTY: (
        "def check_empty(value_to_check, default_value=None):\n"
        "    if value_to_check is None or value_to_check == '':\n"
        "        return default_value\n"
        "    return value_to_check"
    ),
    ScriptFunction.CS_APPEND: (
        "def cs_append(value, text):\n"
        "    return str(value) + str(text)"
    ),
    ScriptFunction.CS_PREPEND: (
        "def cs_prepend(value, text):\n"
        "    return str(text) + str(value)"
    ),
    ScriptFunction.CS_EXTRACT_NUMBER: (
        "def cs_extract_number(value, occurrence=1):\n"
        "    numbers = []\n"
        "    current = ''\n"
        "    for char in str(value) + ' ':\n"
        "        if char.isdigit() or (char == '.' and current.strip('-') and '.' not in current):\n"
        "            current = current + char\n"
        "            continue\n"
        "        if current.strip('-'):\n"
        "            numbers.append(current.rstrip('.'))\n"
        "        current = '-' if char == '-' else ''\n"
        "    index = int(occurrence) - 1\n"
        "    if index < 0 or index >= len(numbers):\n"
        "        return None\n"
        "    number = numbers[index]\n"
        "    return float(number) if '.' in number else int(number)"
    ),
    ScriptFunction.CS_REPLACE: (
        "def cs_replace(value, old_val, new_val, count=None):\n"
        "    if count is None:\n"
        "        return str(value).replace(old_val, new_val)\n"
        "    return str(value).replace(old_val, new_val, int(count))"
    ),
    ScriptFunction.CS_ROUND: (
        "def cs_round(value, digits=0):\n"
        "    rounded = round(float(value), int(digits))\n"
        "    return int(rounded) if int(digits) == 0 else rounded"
    ),
    ScriptFunction.CS_SUBSTRING: (
        "def cs_substring(value, start, end=None):\n"
        "    text = str(value)\n"
        "    if end is None:\n"
        "        return text[int(start):]\n"
        "    return text[int(start):int(end)]"
    ),
    ScriptFunction.CS_TO_LOWER: (
        "def cs_to_lower(value):\n"
        "    return str(value).lower()"
    ),
    ScriptFunction.CS_TO_UPPER: (
        "def cs_to_upper(value):\n"
        "    return str(value).upper()"
    ),
}


def get_script(function: ScriptFunction) -> str:
    """Return the source fragment for a helper function."""
    return _SCRIPTS[function]


def canonical_order(functions: Iterable[ScriptFunction]) -> list[ScriptFunction]:
    """Sort helper functions by ScriptFunction declaration order."""
    selected = set(functions)
    return [function for function in ScriptFunction if function in selected]


def build_functions_script(
    functions: Iterable[ScriptFunction], include_access_stub: bool = False
) -> str:
    """
    Assemble the helper-function bundle sent alongside an expression.

    Every fragment is followed by a blank line. The no-op ``accessed`` stub
    is appended last for backends that do not provide the hook natively.

    Args:
        functions: Helper functions the expression depends on
        include_access_stub: Append ``def accessed(key): pass``

    Returns:
        Concatenated Python source
    """
    script = ""
    for function in canonical_order(functions):
        script += get_script(function) + FUNCTION_DELIMITER
    if include_access_stub:
        script += ACCESS_HOOK_STUB + FUNCTION_DELIMITER
    return script


__all__ = [
    "ACCESS_HOOK",
    "ACCESS_HOOK_STUB",
    "FUNCTION_DELIMITER",
    "SYSTEM_PROPERTIES_MAP",
    "ScriptFunction",
    "build_functions_script",
    "canonical_order",
    "get_script",
]
