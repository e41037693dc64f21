"""Patient document contract: section schema, validation and normalization."""

from document.normalizer import normalize
from document.schema import CANONICAL_ORDER, describe

__all__ = [
    "CANONICAL_ORDER",
    "describe",
    "normalize",
]
