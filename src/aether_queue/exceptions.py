"""Exception types raised across the queue engine."""


class AetherQueueError(Exception):
    """Base class for queue engine errors."""


class EngineError(AetherQueueError):
    """The conversion engine rejected or failed a request."""


class ConversionCancelled(EngineError):
    """The engine reported that a conversion was cancelled."""


class EngineTransportError(EngineError):
    """The engine could not be reached (connection, timeout, bad payload)."""


# Marker text the engine uses when a conversion is aborted by a cancel request
CANCELLED_MARKER = "Conversion cancelled"


def is_cancellation(message: str) -> bool:
    """Return True if an engine error message describes a cancellation."""
    return bool(message) and CANCELLED_MARKER.lower() in message.lower()


class OutputConflict(EngineError):
    """The output path already existed and the conflict mode was skip."""


CONFLICT_MARKER = "File already exists"


def is_conflict(message: str) -> bool:
    return bool(message) and message.startswith(CONFLICT_MARKER)


class SessionDecisionPending(AetherQueueError):
    """A previous session must be restored or discarded first."""


class QueueBusyError(AetherQueueError):
    """The operation is not allowed while the queue is processing."""
