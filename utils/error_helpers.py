"""
Error logging helpers for raffle operations
Both helpers log and re-raise; neither ever swallows an error
"""

import logging
from functools import wraps

logger = logging.getLogger(__name__)


def db_error_handler(func):
    """
    Wrap a transactional raffle operation

    A RaffleError is a rejected request: logged as a warning, without a
    traceback. Anything else is unexpected and logged with one. The
    error always reaches the caller, and the operation's transaction has
    already rolled back by then.

    Usage:
        @db_error_handler
        def claim_refund(self, raffle_id, participant):
            with self.engine.begin() as conn:
                ...
    """
    # utils must not import the package at module load
    from prize_raffle.exceptions import RaffleError

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except RaffleError as e:
            logger.warning(f"{func.__name__} rejected: {e.__class__.__name__}: {e}")
            raise
        except Exception as e:
            logger.error(f"❌ Unexpected error in {func.__name__}: {e}", exc_info=True)
            raise
    return wrapper


class log_exceptions:
    """
    Name the step and raffle involved when something fails inside a block

    Usage:
        with log_exceptions("selecting winners", raffle_id=1, request_id=7):
            winners = selector.select(conn, raffle, random_value)
    """

    def __init__(self, operation, **context):
        self.operation = operation
        self.context = context

    def describe(self):
        details = ', '.join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.operation} [{details}]" if details else self.operation

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            logger.error(f"Error during {self.describe()}: {exc_type.__name__}: {exc_val}")
        return False
