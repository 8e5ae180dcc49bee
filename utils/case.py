"""
camelCase/snake_case conversion at the API edge.
Records are stored snake_case; clients speak camelCase. Pydantic models handle
this through aliases, these helpers cover plain dicts and field names.
"""
from typing import Any, Mapping

from pydantic.alias_generators import to_camel, to_snake


def to_camel_key(s: str) -> str:
    return to_camel(s)


def to_snake_key(s: str) -> str:
    """Accept either spelling of a field name ("badgeReceived" or "badge_received")."""
    return s if "_" in s or s.islower() else to_snake(s)


def dict_keys_to_camel(obj: Any) -> Any:
    """Recursively convert dict keys from snake_case to camelCase for API responses."""
    if isinstance(obj, dict):
        return {to_camel_key(k): dict_keys_to_camel(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [dict_keys_to_camel(x) for x in obj]
    return obj


def present_camel(mapping: Mapping[str, Any] | None) -> dict[str, Any]:
    """camelCase copy without empty values (unset document URLs and the like)."""
    return {to_camel_key(k): dict_keys_to_camel(v) for k, v in (mapping or {}).items() if v}
