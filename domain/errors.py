# vendora_dispatch/domain/errors.py


class DispatchError(Exception):
    """Base class for errors surfaced to the caller as `{success: false}`."""

    http_status = 500


class ValidationError(DispatchError):
    """Missing or malformed input (request body, coordinates)."""

    http_status = 400


class NotFoundError(DispatchError):
    """Order not found or not paid, or location data missing."""

    http_status = 404


class ConflictError(DispatchError):
    """The store rejected a duplicate assignment for the same order."""

    http_status = 409


class TransientStoreError(DispatchError):
    """A data store round trip failed or timed out."""

    http_status = 500


class NonFatalSideEffectError(DispatchError):
    """
    A follow-up write failed after the assignment was persisted.

    Logged and kept on the result; never turned into an error response.
    """
