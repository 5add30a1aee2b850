"""
Error taxonomy for padctl.

Every failure a caller can observe is one of these classes.  Each carries
a stable ``kind`` string which the tool layer copies into the
``error_type`` field of its discriminated result.

SearchDegraded is informational: the search engine records and logs it
when a tier faults, but never raises it to the caller of a search.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

from typing import Optional


class PadError(Exception):
    """Base class for all padctl errors."""

    kind = "PadError"


class NotFound(PadError):
    """Unknown workflow or scratchpad id."""

    kind = "NotFound"


class InactiveWorkflow(PadError):
    """Mutation attempted against a deactivated workflow."""

    kind = "InactiveWorkflow"


class QuotaExceeded(PadError):
    """Scratchpad size or per-workflow count limit reached."""

    kind = "QuotaExceeded"


class ValidationError(PadError, ValueError):
    """Malformed or out-of-range parameters."""

    kind = "ValidationError"


class StorageFault(PadError):
    """Engine I/O error, lock timeout, or unrecoverable transaction failure."""

    kind = "StorageFault"


class SearchDegraded(PadError):
    """A search tier failed and the capability was downgraded."""

    kind = "SearchDegraded"

    def __init__(self, failed_tier: int, fallback_tier: Optional[int],
                 reason: str = ""):
        self.failed_tier = failed_tier
        self.fallback_tier = fallback_tier
        self.reason = reason
        super().__init__(
            f"search tier {failed_tier} failed ({reason}); "
            f"falling back to tier {fallback_tier}"
        )
