"""Platform abstraction layer."""

from .files import atomic_write_json, atomic_write_text, remove_tree
from .paths import home
from .process import CommandOutput, execute

__all__ = [
    "CommandOutput",
    "atomic_write_json",
    "atomic_write_text",
    "execute",
    "home",
    "remove_tree",
]
