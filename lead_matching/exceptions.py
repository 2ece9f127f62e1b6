"""Exceptions raised by the lead matching core."""


class LeadMatchingError(Exception):
    """Base class for errors raised by this package."""


class InvalidInputError(LeadMatchingError, TypeError):
    """An argument does not have the shape the caller contract requires.

    Data-quality problems inside well-formed arguments are recovered
    locally and never raise this.
    """

    def __init__(self, argument: str, expected: str, got: object):
        self.argument = argument
        self.expected = expected
        self.got_type = type(got).__name__
        super().__init__(f"{argument} must be {expected}, got {self.got_type}")
