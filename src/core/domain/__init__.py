"""
Domain models: дерево значений и курсоры обхода.
"""

from src.core.domain.iteration import ConstIter, Iter
from src.core.domain.value import (
    NULL_VALUE,
    FrozenValueError,
    Value,
    ValueType,
    bytes_to_text,
    text_to_bytes,
)

__all__ = [
    # Value tree
    "Value",
    "ValueType",
    "NULL_VALUE",
    "FrozenValueError",
    "bytes_to_text",
    "text_to_bytes",
    # Iteration
    "Iter",
    "ConstIter",
]
