"""Shared utilities."""
from utils.case import dict_keys_to_camel, present_camel, to_camel_key, to_snake_key

__all__ = [
    "to_camel_key",
    "to_snake_key",
    "dict_keys_to_camel",
    "present_camel",
]
