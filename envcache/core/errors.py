# envcache/core/errors.py
# -----------------------------------------------------------------------------
# Structured service errors
# - every failure a caller can see maps to one of these
# - main.py renders them as {"error": code, "detail": message}
# -----------------------------------------------------------------------------


class ServiceError(Exception):
    status_code: int = 500
    code: str = "service_error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.detail}


class UpstreamUnavailable(ServiceError):
    """Provider call failed or timed out. Never cached, never retried here."""

    status_code = 502
    code = "tile_unavailable"


class NotFound(ServiceError):
    status_code = 404
    code = "not_found"


class AlreadyEnded(ServiceError):
    status_code = 409
    code = "already_ended"


class ValidationError(ServiceError):
    status_code = 400
    code = "validation_error"


class StoreError(ServiceError):
    """Persistence failure on any read or write."""

    status_code = 500
    code = "store_error"
