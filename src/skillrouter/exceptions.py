"""Exception types raised by skillrouter components."""

from __future__ import annotations


class SkillRouterError(Exception):
    """Base class for all skillrouter errors."""


class RuleConfigError(SkillRouterError):
    """The rules table is missing or malformed."""


class CompletionError(SkillRouterError):
    """The completion service failed to return a usable response."""


class SkillStoreError(SkillRouterError):
    """The skill store rejected an operation."""


class ConfirmationStoreError(SkillRouterError):
    """The confirmation backend could not be read or written."""
