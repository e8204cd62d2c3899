"""
FastAPI main application.
"""
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import API_V1_PREFIX, CORS_ORIGINS, LOG_LEVEL, VALIDATE_CONFIG_ON_STARTUP
from core.config_validator import config_validator
from core.errors import CircuitOpenError, ConfigurationError, PipelineError
from core.registry import create_registry
from api.routes import admin, content, quality

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Quizforge API",
    description="Question generation reliability and quality API",
    version="1.0.0",
)


@app.on_event("startup")
async def startup():
    """Configure logging, validate configuration and build the registry."""
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if VALIDATE_CONFIG_ON_STARTUP:
        logger.info("Validating configuration...")
        validation_result = config_validator.validate_all()

        for warning in validation_result["warnings"]:
            logger.warning(warning)

        if not validation_result["valid"]:
            for error in validation_result["errors"]:
                logger.error(error)
            raise ConfigurationError(
                f"Application startup aborted: {len(validation_result['errors'])} configuration error(s)"
            )
        logger.info("Configuration validated successfully")

    if getattr(app.state, "registry", None) is None:
        app.state.registry = create_registry()


@app.on_event("shutdown")
async def shutdown():
    registry = getattr(app.state, "registry", None)
    if registry is not None:
        await registry.client.aclose()


@app.exception_handler(CircuitOpenError)
async def circuit_open_handler(request: Request, exc: CircuitOpenError):
    return JSONResponse(
        status_code=503,
        content={"detail": str(exc), "retry_after": exc.remaining},
        headers={"Retry-After": str(int(exc.remaining + 0.999))},
    )


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    logger.error(f"Pipeline error on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc)})


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(admin.router, prefix=f"{API_V1_PREFIX}/admin", tags=["admin"])
app.include_router(quality.router, prefix=f"{API_V1_PREFIX}/quality", tags=["quality"])
app.include_router(content.router, prefix=f"{API_V1_PREFIX}/content", tags=["content"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Quizforge API", "version": "1.0.0"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
