"""FastAPI application exposing the toilet endpoints used by the map client."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..core.model import NewToilet, ToiletUpdate
from ..errors import (
    ConflictError,
    ImageTooLarge,
    NotFound,
    ToiletMapError,
    ValidationError,
)
from ..loader import load_records

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}

FAILURE_MESSAGES = {
    "/add-toilet": "Failed to add toilet",
    "/update-toilet": "Internal server error",
    "/update-toilet-details": "Failed to update toilet",
    "/delete-toilet": "Failed to delete toilet",
}


class AddToiletRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    description: str | None = None
    isFree: bool = True
    imageData: str | None = None


class VoteRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    toiletId: str | int | None = None
    action: str | None = None
    previousVote: str | None = None


class UpdateDetailsRequest(BaseModel):
    # Only the editable fields are accepted; anything else is a client bug.
    model_config = ConfigDict(extra="forbid")

    toiletId: str | int | None = None
    name: str | None = None
    address: str | None = None
    description: str | None = None
    isFree: bool | None = None
    imageData: str | None = None
    removedImages: list[int] = []


class DeleteRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    toiletId: str | int | None = None


class GeocodeRequest(BaseModel):
    latitude: float
    longitude: float


def _toilet_id(value: str | int | None) -> str:
    if value is None or not str(value).strip():
        raise ValidationError("Missing required parameters")
    return str(value).strip()


def _error_body(error: str, details: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": error}
    if details:
        body["details"] = details
    return body


def create_app(runtime: Any) -> FastAPI:
    """
    Create FastAPI application with runtime injected.

    Args:
        runtime: Runtime instance with repository and geocoder

    Returns:
        FastAPI application instance
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await runtime.aclose()

    app = FastAPI(
        title="Toilet Map API",
        description="Crowdsourced public toilet directory",
        version=__version__,
        lifespan=lifespan,
    )
    repository = runtime.repository

    @app.middleware("http")
    async def cors(request: Request, call_next: Any) -> Response:
        # Every path answers preflight with an empty 200.
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 405:
            return JSONResponse(status_code=405, content={"error": "Method not allowed"})
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(RequestValidationError)
    async def bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Invalid request body",
                "details": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(ToiletMapError)
    async def domain_error(request: Request, exc: ToiletMapError) -> JSONResponse:
        if isinstance(exc, ValidationError):
            return JSONResponse(status_code=400, content=_error_body(str(exc)))
        if isinstance(exc, NotFound):
            return JSONResponse(status_code=404, content=_error_body("Toilet file not found"))
        if isinstance(exc, ConflictError):
            return JSONResponse(
                status_code=409,
                content=_error_body("Toilet was changed by someone else, reload and retry", str(exc)),
            )
        if isinstance(exc, ImageTooLarge):
            return JSONResponse(status_code=413, content=_error_body("Image too large", str(exc)))
        logger.error("%s failed: %s", request.url.path, exc)
        message = FAILURE_MESSAGES.get(request.url.path, "Internal server error")
        return JSONResponse(status_code=500, content=_error_body(message, str(exc)))

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        # Served outside the CORS middleware, so the headers are added here.
        logger.error("%s failed unexpectedly", request.url.path, exc_info=exc)
        message = FAILURE_MESSAGES.get(request.url.path, "Internal server error")
        return JSONResponse(
            status_code=500,
            content=_error_body(message, str(exc) or type(exc).__name__),
            headers=CORS_HEADERS,
        )

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "version": __version__}

    @app.get("/toilets")
    async def list_toilets() -> dict[str, Any]:
        """All decodable records; undecodable blobs are listed under `skipped`."""
        result = await load_records(repository.store, repository.codec, repository.records_dir)
        return {
            "toilets": [r.to_dict() for r in result.records],
            "skipped": [{"name": s.name, "reason": s.reason} for s in result.skipped],
        }

    @app.post("/add-toilet")
    async def add_toilet(body: AddToiletRequest) -> dict[str, Any]:
        result = await repository.create(
            NewToilet(
                name=body.name or "",
                address=body.address or "",
                latitude=body.latitude,
                longitude=body.longitude,
                description=body.description or "",
                is_free=body.isFree,
                image_data=body.imageData,
            )
        )
        response: dict[str, Any] = {
            "success": True,
            "message": "Toilet added successfully",
            "toilet": {**result.record.to_dict(), "imageUrl": result.image_url},
        }
        if result.image_error:
            response["imageError"] = result.image_error
        return response

    @app.post("/update-toilet")
    async def update_toilet(body: VoteRequest) -> dict[str, Any]:
        toilet_id = _toilet_id(body.toiletId)
        if not body.action:
            raise ValidationError("Missing required parameters")
        result = await repository.vote(toilet_id, body.action, body.previousVote or None)
        if not result.changed:
            message = f"Toilet {toilet_id} already has your {body.action}"
        else:
            message = f"Toilet {toilet_id} updated successfully"
        return {
            "success": True,
            "message": message,
            "commit": result.commit,
            "toilet": result.record.to_dict(),
        }

    @app.post("/update-toilet-details")
    async def update_toilet_details(body: UpdateDetailsRequest) -> dict[str, Any]:
        toilet_id = _toilet_id(body.toiletId)
        if not body.name or not body.address:
            raise ValidationError("Missing required parameters")
        result = await repository.update(
            toilet_id,
            ToiletUpdate(
                name=body.name,
                address=body.address,
                description=body.description or "",
                is_free=body.isFree,
                image_data=body.imageData,
                removed_images=tuple(body.removedImages),
            ),
        )
        response: dict[str, Any] = {
            "success": True,
            "message": "Toilet updated successfully",
            "toilet": {**result.record.to_dict(), "newImageUrl": result.new_image_url},
        }
        if result.image_error:
            response["imageError"] = result.image_error
        return response

    @app.post("/delete-toilet")
    async def delete_toilet(body: DeleteRequest) -> dict[str, Any]:
        await repository.delete(_toilet_id(body.toiletId))
        return {"success": True, "message": "Toilet deleted"}

    @app.post("/reverse-geocode")
    async def reverse_geocode(body: GeocodeRequest) -> dict[str, Any]:
        result = await runtime.geocoder.reverse_geocode(body.latitude, body.longitude)
        return result.to_dict()

    return app
