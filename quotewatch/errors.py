"""
Exception types shared across quotewatch.
"""


class QuoteWatchError(Exception):
    """Base class for quotewatch errors."""

    pass


class QuoteFetchError(QuoteWatchError):
    """Raised when a quote source cannot return any quotes."""

    pass


class ValidationError(QuoteWatchError):
    """Raised when user supplied values are rejected."""

    pass


class AlertValidationError(ValidationError):
    """Raised when alert parameters are invalid."""

    pass


class GroupValidationError(ValidationError):
    """Raised when a watchlist group is invalid."""

    pass
