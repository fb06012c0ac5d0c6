from __future__ import annotations


class MalformedTripletError(ValueError):
    """A header or data line could not be parsed; the scan is aborted."""


class EmptyIndexMapError(ValueError):
    """A remapping visitor was constructed without any index to keep."""


class RankError(ValueError):
    """The requested rank does not fit the matrix it is applied to."""


class SingularSpectrumError(ArithmeticError):
    """A zero singular value made the Nystrom projection undefined."""
