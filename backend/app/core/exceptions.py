"""Ledger error taxonomy. Routers map these to HTTP status codes in app.main."""


class LedgerError(Exception):
    """Base class for errors raised by the ledger services."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    """Malformed monetary split, out-of-range fee, non-positive amount."""

    status_code = 422


class ConflictError(LedgerError):
    """Duplicate partner account or duplicate payment reference."""

    status_code = 409


class NotFoundError(LedgerError):
    status_code = 404


class AuthorizationError(LedgerError):
    status_code = 403
