"""Parsing helpers for completion-service output."""

from .decision_parser import (
    PARSE_STAGES,
    first_balanced_object,
    normalize_decision,
    parse_bracketed,
    parse_decision,
    parse_payload,
    parse_strict,
)

__all__ = [
    "PARSE_STAGES",
    "first_balanced_object",
    "normalize_decision",
    "parse_bracketed",
    "parse_decision",
    "parse_payload",
    "parse_strict",
]
