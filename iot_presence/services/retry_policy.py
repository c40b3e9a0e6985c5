"""Exponential reconnect backoff with a ceiling and a hard retry limit."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    base_delay: float = 5.0
    max_delay: float = 300.0
    max_retries: int = 10

    def delay_for(self, retry_count: int) -> float:
        """Delay in seconds before reconnect attempt number retry_count (1-based)."""
        if retry_count < 1:
            return 0.0
        # int * float overflows once the exponent passes ~1023
        return min(self.base_delay * (2 ** min(retry_count - 1, 62)), self.max_delay)

    def is_exhausted(self, retry_count: int) -> bool:
        return retry_count >= self.max_retries

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            base_delay=settings.IOTHUB_RETRY_BASE_DELAY_SECONDS,
            max_delay=settings.IOTHUB_RETRY_MAX_DELAY_SECONDS,
            max_retries=settings.IOTHUB_MAX_RETRIES,
        )
