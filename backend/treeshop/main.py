"""
TreeShop Pricing Engine API v1.0
FastAPI surface over the pure pricing engines: scoring, AFISS, time
estimation, margin pricing, equipment/labor cost and job reconciliation.
The API holds no state and performs no storage.
"""
import os
import logging

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from treeshop import __version__
from treeshop.services.errors import (
    InvalidInputError,
    MissingConfigurationError,
    PricingIntegrityError,
)
from treeshop.services.logging_config import setup_logging
from treeshop.services.middleware import RequestTimingMiddleware

load_dotenv()

_log_level = os.getenv("LOG_LEVEL", "INFO")
_json_logs = os.getenv("LOG_FORMAT", "json").lower() != "text"
setup_logging(
    level=_log_level,
    json_output=_json_logs,
    engine_level=os.getenv("TREESHOP_ENGINE_LOG_LEVEL"),
)
logger = logging.getLogger("treeshop.api")


app = FastAPI(
    title="TreeShop Pricing Engine API",
    version=__version__,
    description="Work scoring, margin pricing and two-tier job reconciliation for tree-service jobs",
)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    return JSONResponse(status_code=422, content={"error": "invalid_input", "detail": str(exc)})


@app.exception_handler(MissingConfigurationError)
async def missing_configuration_handler(request: Request, exc: MissingConfigurationError):
    return JSONResponse(
        status_code=404,
        content={"error": "not_configured", "service_type": exc.service_type, "detail": str(exc)},
    )


@app.exception_handler(PricingIntegrityError)
async def pricing_integrity_handler(request: Request, exc: PricingIntegrityError):
    logger.error("pricing integrity failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "pricing_integrity", "detail": str(exc)})


# ---------------------------------------------------------------------------
# CORS, restricted to allowed origins from env
# ---------------------------------------------------------------------------
_cors_default = "http://localhost:3000,http://localhost:8000"
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With", "X-Request-ID"],
)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

# Routers
from treeshop.api.calculator_routes import router as calculator_router
from treeshop.api.cost_routes import router as cost_router
from treeshop.api.job_routes import router as job_router

app.include_router(calculator_router)
app.include_router(cost_router)
app.include_router(job_router)


@app.get("/health")
async def health_check():
    return {"status": "active", "version": __version__}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("treeshop.main:app", host="0.0.0.0", port=8000, reload=True)
