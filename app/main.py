from contextlib import asynccontextmanager
import logging

import aiohttp
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette import status

from app.routes.tenant_setup import router as tenant_setup_router
from app.services.application_service import ApplicationServiceError
from app.services.dependencies import build_setup_session_registry
from app.services.identity_service import IdentityServiceError
from app.services.setup.errors import AlreadyExistsError, TenantSetupError


def _ensure_logging() -> None:
    formatter = logging.Formatter("%(levelname)s: %(message)s")
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    else:
        root.setLevel(logging.INFO)
        for handler in root.handlers:
            handler.setFormatter(formatter)


@asynccontextmanager
async def lifespan(app: FastAPI):
    _ensure_logging()
    app.state.http_session = aiohttp.ClientSession()
    app.state.setup_sessions = build_setup_session_registry(app)
    try:
        yield
    finally:
        await app.state.setup_sessions.shutdown()
        await app.state.http_session.close()


app = FastAPI(lifespan=lifespan)

app.include_router(tenant_setup_router)


@app.exception_handler(AlreadyExistsError)
async def already_exists_error_handler(request: Request, exc: AlreadyExistsError) -> JSONResponse:
    """The organization name is taken; the client should ask for another name."""
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc), "error": exc.error_code},
    )


@app.exception_handler(TenantSetupError)
async def tenant_setup_error_handler(request: Request, exc: TenantSetupError) -> JSONResponse:
    """Map saga-fatal failures to 502 with a machine-readable error code.

    Returns:
        502 Bad Gateway with a JSON body: {"detail": "...", "error": "<CODE>"}
    """
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": exc.reason, "error": exc.error_code},
    )


@app.exception_handler(IdentityServiceError)
@app.exception_handler(ApplicationServiceError)
async def upstream_service_error_handler(request: Request, exc: RuntimeError) -> JSONResponse:
    """Map backend client failures that escape a route to a consistent response."""
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": str(exc)},
    )


@app.get("/")
async def root():
    return {"message": "Tenant setup service is running."}
