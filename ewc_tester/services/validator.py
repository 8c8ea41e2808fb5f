"""
Response validator — evaluates a test's validation rules against a response body.

Rule: {"field": "data.dan", "condition": "exists", "value": ...}

``field`` is a dot path; numeric segments index into lists.
Conditions: equals, contains, exists, notExists, greaterThan, lessThan.
greaterThan / lessThan only pass when both sides are numbers.
"""

from __future__ import annotations

from typing import Any

_MISSING = object()


def get_nested_value(data: Any, path: str) -> Any:
    """Resolve a dot path (``a.b.0.c``) inside parsed JSON. Missing → None."""
    current = data
    for key in (path or "").split("."):
        if isinstance(current, dict):
            current = current.get(key, _MISSING)
        elif isinstance(current, list) and key.lstrip("-").isdigit():
            idx = int(key)
            current = current[idx] if -len(current) <= idx < len(current) else _MISSING
        else:
            current = _MISSING
        if current is _MISSING:
            return None
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equals(actual: Any, expected: Any) -> bool:
    # True must not equal 1
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual is expected
    if _is_number(actual) and _is_number(expected):
        return actual == expected
    if type(actual) is not type(expected):
        return False
    return actual == expected


def _check(rule: dict, actual: Any) -> tuple[bool, str]:
    field = rule.get("field")
    condition = rule.get("condition")
    expected = rule.get("value")

    if condition == "equals":
        passed = _strict_equals(actual, expected)
        return passed, (
            f'Field "{field}" equals expected value' if passed
            else f'Expected "{expected}" but got "{actual}"'
        )

    if condition == "contains":
        if isinstance(actual, str):
            passed = isinstance(expected, str) and expected in actual
            return passed, (
                f'Field "{field}" contains "{expected}"' if passed
                else f'Expected field to contain "{expected}" but it doesn\'t'
            )
        if isinstance(actual, list):
            passed = any(_strict_equals(item, expected) for item in actual)
            return passed, (
                f'Array "{field}" contains expected value' if passed
                else f'Expected array to contain "{expected}" but it doesn\'t'
            )
        return False, f'Field "{field}" is not a string or array'

    if condition == "exists":
        passed = actual is not None
        return passed, f'Field "{field}" exists' if passed else f'Field "{field}" does not exist'

    if condition == "notExists":
        passed = actual is None
        return passed, (
            f'Field "{field}" does not exist as expected' if passed
            else f'Field "{field}" exists but should not'
        )

    if condition in ("greaterThan", "lessThan"):
        if not (_is_number(actual) and _is_number(expected)):
            return False, f'Field "{field}" or expected value is not a number'
        if condition == "greaterThan":
            passed = actual > expected
            word = "greater"
        else:
            passed = actual < expected
            word = "less"
        return passed, (
            f'Field "{field}" ({actual}) is {word} than {expected}' if passed
            else f'Expected "{field}" ({actual}) to be {word} than {expected}'
        )

    return False, f"Unknown validation condition: {condition}"


def validate_response(data: Any, validations: list[dict] | None) -> list[dict]:
    """Evaluate every rule; returns one outcome dict per rule (empty if no rules)."""
    results = []
    for rule in validations or []:
        actual = get_nested_value(data, rule.get("field", ""))
        passed, message = _check(rule, actual)
        results.append({
            "field": rule.get("field"),
            "condition": rule.get("condition"),
            "expected": rule.get("value"),
            "actual": actual,
            "passed": passed,
            "message": message,
        })
    return results


def all_validations_passed(results: list[dict]) -> bool:
    return all(r["passed"] for r in results)
