import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

from schematic_vision.app.api.errors import ApiError, error_body
from schematic_vision.app.api.routes import api_router
from schematic_vision.app.core.config import ConfigurationError, get_settings
from schematic_vision.app.services.delivery import DeliveryError
from schematic_vision.app.services.upload_normalizer import UploadValidationError
from schematic_vision.app.services.vision_client import VisionClientError

logger = logging.getLogger(__name__)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", []) if part is not None)
        msg = err.get("msg", "Invalid value")
        details.append(f"{loc}: {msg}" if loc else msg)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Invalid request payload.", "; ".join(details)),
    )


async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.error, exc.details))


async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Configuration error: %s", exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=error_body(str(exc)))


async def upload_validation_error_handler(request: Request, exc: UploadValidationError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_body(str(exc)))


async def delivery_error_handler(request: Request, exc: DeliveryError):
    logger.error("Upload delivery failed: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Unable to prepare uploaded images.", str(exc)),
    )


async def vision_error_handler(request: Request, exc: VisionClientError):
    logger.error("Vision request failed: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Vision request failed.", str(exc) or "Unknown error occurred."),
    )


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Schematic Vision", version="0.1.0")
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(ConfigurationError, configuration_error_handler)
    app.add_exception_handler(UploadValidationError, upload_validation_error_handler)
    app.add_exception_handler(DeliveryError, delivery_error_handler)
    app.add_exception_handler(VisionClientError, vision_error_handler)
    app.include_router(api_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.on_event("startup")
    async def startup_event() -> None:
        if settings.storage_enabled:
            logger.info("Object storage offload enabled for bucket %s", settings.s3_bucket)
        else:
            logger.info("Object storage not configured; uploads will be delivered inline")

    return app


app = create_app()
