"""
Exception types raised by SpotScape.

Contract violations (empty inputs, mismatched spot sets, malformed
thresholds) subclass ``ValueError`` so existing ``except ValueError``
handlers keep working. Missing genes subclass ``KeyError`` and are
normally caught inside the ligand-receptor scorer.
"""

from typing import Iterable, Optional


class SpotScapeError(Exception):
    """Base class for all SpotScape errors."""


class MissingCoordinatesError(SpotScapeError, ValueError):
    """No usable spatial coordinates could be extracted."""


class EmptyInputError(SpotScapeError, ValueError):
    """A required input has zero length."""


class EmptyCoordinatesError(EmptyInputError):
    """The coordinate table has zero spots."""


class InvalidThresholdError(SpotScapeError, ValueError):
    """A threshold band is malformed (e.g. minval > maxval)."""


class DimensionMismatchError(SpotScapeError, ValueError):
    """Signal, coordinate or label tables disagree on the spot set."""


class MissingGeneError(SpotScapeError, KeyError):
    """One or more genes are absent from the expression table."""

    def __init__(self, genes: Iterable[str], context: Optional[str] = None):
        self.genes = list(genes)
        self.context = context
        msg = f"Gene(s) not found in expression table: {', '.join(self.genes)}"
        if context:
            msg = f"{msg} (required by {context})"
        super().__init__(msg)

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return self.args[0]


def _preview(items, n: int = 5) -> str:
    """Format the first few offending identifiers for an error message."""
    items = [str(x) for x in items]
    head = ", ".join(items[:n])
    if len(items) > n:
        head += f", ... ({len(items)} total)"
    return head
