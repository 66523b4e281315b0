"""
FastAPI application entry point
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn
from messbook.core.config import settings
from messbook.core.logging_config import configure_logging, get_logger
from messbook.db.database import init_db
from messbook.middleware.operation_log import OperationLogMiddleware

configure_logging(settings.log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Serving collections from %s", settings.data_root.resolve())
    yield


app = FastAPI(
    title="Messbook API",
    description="Mess inventory and consumption ledger",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(OperationLogMiddleware)

# CORS for the desktop / browser front end
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are reported like any other ValidationError"""
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    request.state.error_kind = "ValidationError"
    request.state.error_message = problems
    return JSONResponse(status_code=400, content={"error": problems, "kind": "ValidationError"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Unexpected errors still answer with JSON"""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": f"Internal server error: {exc}", "kind": "InternalError"},
    )


@app.get("/")
async def root():
    return {"message": "Messbook API", "version": "1.0.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


from messbook.api import operation_logs, sheets, statistics  # noqa: E402
app.include_router(sheets.router)
app.include_router(statistics.router)
app.include_router(operation_logs.router)


if __name__ == "__main__":
    uvicorn.run("messbook.main:app", host="0.0.0.0", port=8000)
