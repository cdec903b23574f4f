"""Error taxonomy shared by every service and its FastAPI handlers.

Expected outcomes (validation, not found, forbidden, conflict) are raised as
`MarketplaceError` subclasses and surfaced verbatim. Collaborator failures are
`Upstream`. Anything else reaching a request boundary is logged and reported
as a generic internal error.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from marketplace.common.logging import logger


class MarketplaceError(Exception):
    """Base class for errors that map onto a client-visible status."""

    status_code = 500
    code = "error"

    def __init__(self, message: str = "", errors: list[dict] | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.errors = errors or []

    def to_dict(self) -> dict:
        body = {"status": self.code, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(MarketplaceError):
    status_code = 400
    code = "validation_error"

    @classmethod
    def from_pydantic(cls, exc, message: str = "invalid request") -> "ValidationError":
        """Build an itemized error from a pydantic/FastAPI validation failure."""

        items = []
        for err in exc.errors():
            loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
            items.append({"field": ".".join(loc) or "__root__", "message": err.get("msg", "invalid")})
        return cls(message, errors=items)


class Unauthorized(MarketplaceError):
    status_code = 401
    code = "unauthorized"


class Forbidden(MarketplaceError):
    status_code = 403
    code = "forbidden"


class NotFound(MarketplaceError):
    status_code = 404
    code = "not_found"


class Conflict(MarketplaceError):
    status_code = 409
    code = "conflict"


class Upstream(MarketplaceError):
    status_code = 502
    code = "upstream_error"


class Internal(MarketplaceError):
    status_code = 500
    code = "internal_error"


def install_error_handlers(app: FastAPI) -> None:
    """Map the taxonomy onto HTTP responses for one service."""

    @app.exception_handler(MarketplaceError)
    async def handle_marketplace_error(request: Request, exc: MarketplaceError):
        if exc.status_code >= 500:
            logger.error("request_failed path=%s status=%s error=%s", request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        error = ValidationError.from_pydantic(exc)
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("unhandled_error path=%s error=%s", request.url.path, exc)
        error = Internal("Internal Server Error, see server logs")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())
