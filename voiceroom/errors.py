class EconomyError(Exception):
    """Base class for failures raised by the economy and game core."""


class InsufficientFundsError(EconomyError):
    """Spendable coins do not cover the requested debit. Nothing was written."""

    def __init__(self, user_id: int, needed: int, available: int | None = None):
        self.user_id = user_id
        self.needed = needed
        self.available = available
        super().__init__(f"user {user_id} cannot cover {needed} coins")


class TransientWriteError(EconomyError):
    """A write after the sender debit failed.

    Reported as a warning on the gift receipt. The debit is never reversed.
    """

    def __init__(self, step: str, cause: Exception):
        self.step = step
        self.cause = cause
        super().__init__(f"{step} failed: {cause}")


class InvalidBetError(EconomyError):
    """Bet rejected: wrong phase, unknown option, bad amount or not enough coins."""


class UnknownEntityError(EconomyError):
    """Referenced user, gift, room or game session does not exist."""
