import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fintrack.api.router import api_router
from fintrack.config import settings
from fintrack.core.database import init_db
from fintrack.core.errors import LedgerError
from fintrack.core.logging import configure_logging

logger = structlog.get_logger(__name__)

tags_metadata = [
    {
        "name": "Transactions",
        "description": "Ledger entries. Every write keeps account balances in step.",
    },
    {
        "name": "Analytics",
        "description": "Income, expense and category reporting.",
    },
    {
        "name": "Accounts",
        "description": "Accounts, balances and categories.",
    },
    {
        "name": "Receipts",
        "description": "Receipt scanning and saving scanned receipts as expenses.",
    },
    {
        "name": "Bitcoin",
        "description": "Demo bitcoin integrity dashboard.",
    },
    {
        "name": "System",
        "description": "Service endpoints.",
    },
]

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
### API documentation

Personal finance ledger: transactions, balances and summaries per user.
Callers identify themselves with the `X-User-Id` header.

    """,
    version=settings.VERSION,
    openapi_tags=tags_metadata,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    log = logger.error if exc.retryable else logger.info
    log("request_failed", path=request.url.path, kind=exc.kind, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(
        status_code=400,
        content={"error": {"kind": "validation_error", "message": message, "retryable": False}},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": {"kind": "internal_error", "message": "Internal server error", "retryable": False}},
    )


@app.on_event("startup")
async def startup():
    configure_logging(settings.LOG_LEVEL)
    await init_db()


app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health", tags=["System"])
def health():
    return {
        "status": "operational",
        "version": settings.VERSION,
    }
