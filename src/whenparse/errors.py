from datetime import datetime


class ExpressionError(ValueError):
    """Base class for everything that can go wrong with an expression."""


class UnparsableExpression(ExpressionError):
    def __init__(self, text: str, offset: int):
        self.text = text
        self.offset = offset
        self.remaining = text[offset:]
        if self.remaining:
            msg = f"cannot understand {self.remaining!r} in {text!r}"
        else:
            msg = f"expression {text!r} is incomplete"
        super().__init__(msg)


class IncompatibleScope(ExpressionError):
    """Two parts of an expression talk about the same unit of time."""


class AbsoluteLoopConflict(ExpressionError):
    """An absolute date was combined with a repetition."""


class BoundOrderingError(ExpressionError):
    def __init__(self, lower: datetime, upper: datetime):
        self.lower = lower
        self.upper = upper
        super().__init__(
            f"the 'from' bound {lower:%Y-%m-%d %H:%M} is not before "
            f"the 'until' bound {upper:%Y-%m-%d %H:%M}"
        )


class EmptyTerm(ExpressionError):
    """Nothing that names a point or span in time."""


class BoundExceeded(ExpressionError):
    def __init__(self, candidate: datetime, bound: datetime):
        self.candidate = candidate
        self.bound = bound
        super().__init__(
            f"next occurrence {candidate:%Y-%m-%d %H:%M} is past "
            f"the 'until' bound {bound:%Y-%m-%d %H:%M}"
        )


class NoFutureOccurrence(ExpressionError):
    """The expression cannot be moved past the reference time."""
