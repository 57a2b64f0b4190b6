from __future__ import annotations

from typing import Optional, Union

JSONValue = Union[None, bool, int, float, str, list["JSONValue"], dict[str, "JSONValue"]]

# Compared case-insensitively; values under these names are passed through untouched.
EXCLUDED_FIELDS = frozenset(
    {
        "password",
        "newpassword",
        "new_password",
        "oldpassword",
        "old_password",
        "currentpassword",
        "current_password",
        "confirmpassword",
        "confirm_password",
        "password_confirmation",
    }
)


def clean_string(value: str) -> str:
    return value.replace("\x00", "").strip()


def is_excluded(field: Optional[str], excluded: frozenset[str] = EXCLUDED_FIELDS) -> bool:
    return field is not None and field.lower() in excluded


def sanitize_value(
    value: JSONValue,
    field: Optional[str] = None,
    excluded: frozenset[str] = EXCLUDED_FIELDS,
) -> JSONValue:
    """Strip null bytes and surrounding whitespace from every string leaf.

    ``field`` is the nearest enclosing object key; list items inherit it, so a
    list stored under ``password`` is left alone as well.
    """
    if isinstance(value, str):
        return value if is_excluded(field, excluded) else clean_string(value)
    if isinstance(value, list):
        return [sanitize_value(item, field, excluded) for item in value]
    if isinstance(value, dict):
        return {key: sanitize_value(item, key, excluded) for key, item in value.items()}
    return value


def sanitize_pairs(
    pairs: list[tuple[str, str]],
    excluded: frozenset[str] = EXCLUDED_FIELDS,
) -> list[tuple[str, str]]:
    return [(key, value if is_excluded(key, excluded) else clean_string(value)) for key, value in pairs]
