"""Exponential backoff helpers shared by the HTTP guard and slow validation."""


class RetryError(Exception):
    """Raised when every attempt of a guarded call failed.

    Callers should read this as "lookup unavailable", never as
    "entity does not exist".
    """

    def __init__(self, message: str, attempts: int, last_error: BaseException | None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error

    @property
    def last_status(self) -> int | None:
        return getattr(self.last_error, "status_code", None)


def compute_backoff(
    attempt: int,
    initial_delay: float = 0.5,
    max_delay: float = 10.0,
    multiplier: float = 2.0,
) -> float:
    """Delay before retry number `attempt` (0-based), capped at max_delay."""
    delay = initial_delay * (multiplier**attempt)
    return min(delay, max_delay)


def backoff_schedule(
    retries: int,
    initial_delay: float = 0.5,
    max_delay: float = 10.0,
    multiplier: float = 2.0,
) -> list[float]:
    return [compute_backoff(i, initial_delay, max_delay, multiplier) for i in range(retries)]
