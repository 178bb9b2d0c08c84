"""
Webhook Receiver Application

FastAPI app that accepts messages from the edge email worker and stores
them in the recipient's inbox.

Run locally with scripts/local_api_server.py.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.webhook import router as webhook_router
from qemail.exceptions import DynamoDBError, InboxNotFoundError, QEmailError, S3Error

log = structlog.get_logger()


def _error_response(status_code: int, exc: QEmailError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


def create_app() -> FastAPI:
    app = FastAPI(title="QEmail Webhook Receiver")

    @app.exception_handler(InboxNotFoundError)
    async def inbox_not_found(request: Request, exc: InboxNotFoundError) -> JSONResponse:
        return _error_response(404, exc)

    @app.exception_handler(DynamoDBError)
    @app.exception_handler(S3Error)
    async def storage_failed(request: Request, exc: QEmailError) -> JSONResponse:
        log.error("storage_failed", path=request.url.path, error=str(exc))
        return _error_response(502, exc)

    @app.exception_handler(QEmailError)
    async def qemail_error(request: Request, exc: QEmailError) -> JSONResponse:
        log.error("request_failed", path=request.url.path, error=str(exc))
        return _error_response(500, exc)

    @app.get("/health", tags=["health"])
    def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(webhook_router)
    return app
