"""Error taxonomy for rule table construction and request routing."""

from __future__ import annotations


class RouterError(Exception):
    """Base class for all router errors."""


class ConfigurationError(RouterError):
    """Raised when a rule table cannot be built, loaded or validated."""


class UnmatchedRequestError(RouterError):
    """Raised when no rule matches (only possible for an unvalidated rule list)."""


class InvalidRequestError(RouterError, ValueError):
    """Raised when a ChangeRequest is malformed."""
