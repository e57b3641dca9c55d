"""Exceptions raised by the fulfillment services."""

import time


class FulfillmentError(Exception):
    """Base class for domain errors."""


class ValidationError(FulfillmentError):
    """A request field failed validation. Reported as 400, never retried."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class OrderNotFound(FulfillmentError):
    def __init__(self, order_number: str):
        super().__init__(f"Order {order_number} not found")
        self.order_number = order_number


class InvalidTransition(FulfillmentError):
    def __init__(self, order_number: str, old_status: str, new_status: str):
        super().__init__(f"Order {order_number} cannot move from {old_status} to {new_status}")
        self.order_number = order_number
        self.old_status = old_status
        self.new_status = new_status


class WorkerAlreadyOnline(FulfillmentError):
    """Another live worker already holds this name."""

    def __init__(self, worker_name: str):
        super().__init__(f"Worker {worker_name} is already online")
        self.worker_name = worker_name


class IntakeBusy(FulfillmentError):
    """No intake slot freed up before the request deadline."""


class DeadlineExceeded(FulfillmentError):
    pass


class Deadline:
    """
    A point in (monotonic) time after which an operation must give up.

    Long operations call check() between steps.
    """

    def __init__(self, seconds: float, clock=time.monotonic):
        self._clock = clock
        self.expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(self.expires_at - self._clock(), 0.0)

    @property
    def expired(self) -> bool:
        return self._clock() >= self.expires_at

    def check(self, operation: str = "operation") -> None:
        if self.expired:
            raise DeadlineExceeded(f"{operation} exceeded its deadline")
