import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quotedesk.app.config import create_storage_service, get_settings
from quotedesk.app.core.errors import QuoteDeskError
from quotedesk.app.core.logging_config import configure_logging
from quotedesk.app.db import Base, engine
from quotedesk.app.ports.storage_provider import set_storage_service
from quotedesk.app.routers import objects, quotes

logger = logging.getLogger(__name__)

app = FastAPI(
    title="QuoteDesk",
    version="1.0.0",
    docs_url="/docs",
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    Base.metadata.create_all(bind=engine)
    set_storage_service(create_storage_service(settings))


@app.exception_handler(QuoteDeskError)
async def quotedesk_error_handler(request: Request, exc: QuoteDeskError):
    principal = getattr(request.state, "principal", None)
    extra = {"principal": principal.principal_id if principal else "-"}
    if exc.expose:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
    logger.error(
        "%s %s failed with %s: %s details=%s",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc.message,
        exc.details,
        extra=extra,
    )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "details": jsonable_encoder(exc.errors())},
    )


app.include_router(objects.router, tags=["objects"])
app.include_router(quotes.api_router)
app.include_router(quotes.admin_router)


@app.get("/healthz")
async def healthz() -> dict:
    return {"status": "ok"}
