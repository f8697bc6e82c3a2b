"""
Domain exceptions raised by the services layer.

Routers translate these into HTTP responses; see ``http_status``.
"""


class AtelierError(Exception):
    """Base class for all production-tracking errors."""

    http_status = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(AtelierError):
    """Raised when an order, item, status, assignment or worker is unknown."""

    http_status = 404


class InvalidRequestError(AtelierError):
    """Raised for malformed ids, missing fields or unresolvable article keys."""

    http_status = 400


class SyncAlreadyRunningError(AtelierError):
    """Raised when a sync is requested while another one is in flight."""

    http_status = 409

    def __init__(self, started_at=None):
        self.started_at = started_at
        super().__init__("A synchronization is already running")


class UpstreamNotConfiguredError(AtelierError):
    """Raised when WooCommerce credentials are missing."""

    http_status = 503
