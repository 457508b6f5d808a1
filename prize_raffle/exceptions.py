# Every error raised by the raffle core derives from RaffleError.
# A raised error always means the raffle is exactly as it was before the call.


class RaffleError(Exception):
    def __init__(self, message=None, raffle_id=None):
        self.raffle_id = raffle_id
        super().__init__(message or self.__class__.__name__)


# Creation requests rejected before anything is stored
class RaffleValidationError(RaffleError):
    pass


class InvalidCutoffTime(RaffleValidationError):
    pass


class InvalidPricingOption(RaffleValidationError):
    pass


class InvalidMinimumEntries(RaffleValidationError):
    pass


class InvalidMaximumEntriesPerParticipant(RaffleValidationError):
    pass


class InvalidPrize(RaffleValidationError):
    pass


class InvalidEntryOption(RaffleValidationError):
    pass


class InvalidEntryIndex(RaffleValidationError):
    pass


class InvalidTierIndex(RaffleValidationError):
    pass


# Operations that do not fit the raffle's current state
class RaffleStateError(RaffleError):
    pass


class RaffleNotFound(RaffleStateError):
    pass


class InvalidRaffleStatus(RaffleStateError):
    pass


class InvalidRequestId(RaffleStateError):
    pass


class RaffleNotEligibleForCancellation(RaffleStateError):
    pass


class RaffleNotEligibleForDraw(RaffleStateError):
    pass


class CutoffTimeReached(RaffleStateError):
    pass


class InsufficientEntries(RaffleStateError):
    pass


# Purchases rejected in full
class RaffleCapacityError(RaffleError):
    pass


class MaximumEntriesExceeded(RaffleCapacityError):
    pass


class EntriesOversold(RaffleCapacityError):
    pass


class IncorrectPayment(RaffleCapacityError):
    pass


# Caller is not allowed to do this
class RaffleAuthorizationError(RaffleError):
    pass


class NotOperator(RaffleAuthorizationError):
    pass


class NotWinner(RaffleAuthorizationError):
    pass


class NotParticipant(RaffleAuthorizationError):
    pass


class AlreadyClaimed(RaffleAuthorizationError):
    pass
