#!/usr/bin/env python3
"""
Error taxonomy for the monitor

Errors below the cycle level are converted into negative outcomes
(skipped case, failed notification). Only CycleFatalError ends a cycle.
"""


class MonitorError(Exception):
    """Base class for every error raised by the monitor"""

    classification = "monitor_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"error": self.message, "type": self.classification}


class FetchError(MonitorError):
    """Case source could not be reached after all retry attempts"""

    classification = "fetch_error"

    def __init__(self, message: str = "", cino: str = None, attempts: int = 0):
        super().__init__(message)
        self.cino = cino
        self.attempts = attempts


class InvalidInputError(MonitorError):
    """A malformed snapshot was handed to the change detector"""

    classification = "invalid_input"


class TransportError(MonitorError):
    """The messaging transport refused or failed a send"""

    classification = "transport_error"


class CycleFatalError(MonitorError):
    """Anything that escaped the per-case and per-notification containment"""

    classification = "cycle_fatal"


class NotFoundError(MonitorError):
    classification = "not_found"


class ConflictError(MonitorError):
    classification = "conflict"
