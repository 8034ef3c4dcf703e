"""
Error taxonomy for raffle operations

Expected outcomes (already joined, raffle closed, not eligible) are
returned as typed results by the services. The exceptions below cover
invalid calls and infrastructure failures.
"""

from typing import Optional


class RaffleError(Exception):
    """Base class for all group raffle errors"""


class InvalidArgument(RaffleError, ValueError):
    """Malformed input, e.g. a non-positive winner count or negative weight"""


class NotFound(RaffleError):
    """Raffle, subscription or group does not exist"""


class Conflict(RaffleError):
    """Operation is incompatible with the current state of a record"""


class NotEligible(RaffleError):
    """User may not take part in raffles of the group"""

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason


class NoEligibleWinners(RaffleError):
    """
    Draw could not select anyone

    Attributes:
        raffle_id: Raffle the draw was attempted for
        raffle_closed: True if the raffle was already moved to ``drawn``
            before the empty draw happened
    """

    def __init__(self, raffle_id: Optional[str] = None, raffle_closed: bool = False):
        message = "No eligible winners"
        if raffle_id:
            message = f"No eligible winners for raffle {raffle_id}"
        super().__init__(message)
        self.raffle_id = raffle_id
        self.raffle_closed = raffle_closed


class Unavailable(RaffleError):
    """Persistence or delivery backend failed"""
