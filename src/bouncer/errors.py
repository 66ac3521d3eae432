"""Exception types raised by the enforcement engine."""


class BouncerError(Exception):
    """Base class for all bouncer errors."""


class InvariantError(BouncerError, ValueError):
    """Raised when a value is constructed in (or mutated into) an invalid state."""


class SequenceError(BouncerError):
    """Raised when a page receives an event or action earlier than its own history."""


class UnknownTypeError(BouncerError, ValueError):
    """Raised when a tagged record carries a discriminant we cannot handle."""

    def __init__(self, family: str, tag: object) -> None:
        super().__init__(f"invalid {family} type {tag!r} cannot be deserialized")
        self.family = family
        self.tag = tag


class GuardNotFoundError(BouncerError, LookupError):
    """Raised when a guard id does not refer to any known guard."""


def check(condition: bool, message: str) -> None:
    if not condition:
        raise InvariantError(message)
