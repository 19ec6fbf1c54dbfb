"""Domain errors raised by the store services.

Each error carries the HTTP status the API layer answers with; the
handlers in ``storefront.main`` turn them into ``{"detail": ...}`` bodies.
"""

class StoreError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

class NotFound(StoreError):
    status_code = 404

class InvalidInput(StoreError):
    status_code = 400

class Conflict(StoreError):
    status_code = 409

class Internal(StoreError):
    """Storage or transaction failure. Safe for the caller to retry."""
    status_code = 500
