"""FastAPI application entrypoint."""

import logging

from fastapi import FastAPI
from fastapi import Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.responses import Response

from denteval.errors import EvaluationError
from denteval.routers.evaluations import router as evaluations_router
from denteval.routers.sessions import router as sessions_router
from denteval.settings import Settings, settings

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

_PUBLIC_PATHS = {
    "/health",
    "/rubric",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/favicon.ico",
    "/favicon.png",
}


@app.middleware("http")
async def enforce_api_key(request: Request, call_next):
    if request.method == "OPTIONS":
        return await call_next(request)

    path = request.url.path
    root_path = request.scope.get("root_path", "")
    if root_path and path.startswith(root_path):
        path = path[len(root_path) :]
    if path in _PUBLIC_PATHS or path.startswith("/rubric/"):
        return await call_next(request)

    expected_api_key = Settings().backend_api_key.strip()
    if expected_api_key:
        received_api_key = request.headers.get("X-API-Key", "")
        if received_api_key != expected_api_key:
            return JSONResponse(status_code=401, content={"detail": "Unauthorized"})

    return await call_next(request)


@app.exception_handler(EvaluationError)
async def evaluation_error_handler(request: Request, exc: EvaluationError) -> JSONResponse:
    logger.warning(
        "evaluation failed",
        extra={"path": request.url.path, "stage": "error_handler", "error_type": type(exc).__name__, "reason": str(exc)},
    )
    return JSONResponse(status_code=exc.http_status, content={"detail": exc.user_message})


app.include_router(evaluations_router)
app.include_router(sessions_router)


@app.get("/health", tags=["meta"])
def health() -> dict[str, bool | str]:
    current = Settings()
    return {
        "ok": True,
        "openai_configured": current.openai_configured,
        "openai_mock": current.openai_mock,
        "model": current.openai_model,
    }


@app.options("/{path:path}", include_in_schema=False)
async def preflight(path: str) -> Response:
    del path
    return Response(status_code=204)
