"""
Exceptions raised by the bracket engine.
"""


class BracketError(Exception):
    """Base class for all bracket engine errors."""


class InvalidStageInput(BracketError, ValueError):
    """Rejected input: raised before any match is written."""


class GraphConsistencyError(BracketError):
    """The match graph was built or mutated incorrectly. Not retryable."""


class NotFoundError(BracketError, KeyError):
    """Unknown tournament, stage, match or participant."""

    def __str__(self):
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ''
