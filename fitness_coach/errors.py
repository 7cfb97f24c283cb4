from __future__ import annotations


class FitnessBotError(Exception):
    """Base class for errors raised by the bot core."""


class RepositoryError(FitnessBotError):
    """A read or write against the user/workout store failed."""


class TransportError(FitnessBotError):
    """Delivering a message to a recipient failed."""

    def __init__(self, recipient_id: str, reason: str) -> None:
        super().__init__(f"delivery to {recipient_id} failed: {reason}")
        self.recipient_id = recipient_id
        self.reason = reason


class SessionAlreadyActiveError(FitnessBotError):
    def __init__(self, recipient_id: str, program: str) -> None:
        super().__init__(f"recipient {recipient_id} already has an active '{program}' session")
        self.recipient_id = recipient_id
        self.program = program


class UnknownProgramError(FitnessBotError):
    pass
