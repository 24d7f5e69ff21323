import os
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from api.middleware import CORSMiddleware, LoggingMiddleware, cors_options
from api.onboarding.finalize import router as finalize_router
from api.onboarding.state import router as onboarding_state_router
from api.draft.claim import router as claim_router
from database import create_tables, close_db_connections
from exceptions import BaseFinalizationException, EXCEPTION_TO_STATUS
from logging_config import get_logger, log_error

logger = get_logger(__name__)

app = FastAPI(title="Draft Finalization Service")

# SECURITY: Limit CORS to specific origins (ALLOWED_ORIGINS)
app.add_middleware(CORSMiddleware, **cors_options())
app.add_middleware(LoggingMiddleware)

app.include_router(finalize_router)
app.include_router(claim_router)
app.include_router(onboarding_state_router)


@app.exception_handler(BaseFinalizationException)
async def finalization_exception_handler(request: Request, exc: BaseFinalizationException):
    status_code = EXCEPTION_TO_STATUS.get(type(exc), 500)
    if status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message, details=exc.details)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log_error(exc, context={"path": request.url.path})
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid draft payload", "details": jsonable_encoder(errors)},
    )


@app.on_event("startup")
async def startup():
    await create_tables()
    logger.info("service_online")


@app.on_event("shutdown")
async def shutdown():
    await close_db_connections()


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
