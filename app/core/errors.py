"""API error taxonomy. Each error maps to one HTTP status and one stable error code."""


class ApiError(Exception):
    """Base class for errors rendered as {"error": <code>} responses."""

    status_code = 500
    error = "server_error"

    def __init__(self, detail: str | None = None) -> None:
        # detail is for logs only; it is never sent to the client
        self.detail = detail or self.error
        super().__init__(self.detail)


class MissingToken(ApiError):
    """No bearer token in the Authorization header."""

    status_code = 401
    error = "missing_token"


class InvalidToken(ApiError):
    """Signature, structure, issuer, audience or lifetime check failed."""

    status_code = 401
    error = "invalid_token"


class InsufficientScope(ApiError):
    status_code = 403
    error = "insufficient_scope"


class Forbidden(ApiError):
    """Authenticated, but not the configured administrator."""

    status_code = 403
    error = "forbidden"


class MissingClaims(ApiError):
    """Authenticated, but subject or email could not be determined."""

    status_code = 400
    error = "missing_claims"


class NotFound(ApiError):
    status_code = 404
    error = "not_found"


class UpstreamUnavailable(ApiError):
    """JWKS endpoint or database failed or timed out."""

    status_code = 500
    error = "upstream_unavailable"


class InvalidRequest(ApiError):
    """Malformed query, path or body parameters."""

    status_code = 400
    error = "invalid_request"
