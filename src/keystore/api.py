"""
HTTP/JSON binding for the key service.

Routes:
- POST /wrap    {"token", "table", "column", "plainKey"}   -> {"code", "wrappedKey"|"error"}
- POST /unwrap  {"token", "table", "column", "wrappedKey"} -> {"code", "plainKey"|"error"}
- GET  /health

Key bytes travel as standard base64. Business failures are HTTP 200 with
``code: -1``; malformed bodies are HTTP 400; every internal fault is the
same HTTP 500 so callers cannot tell which dependency failed.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import InternalError
from .models import UnwrapKeyRequest, UnwrapKeyResponse, WrapKeyRequest, WrapKeyResponse
from .service import KeyHierarchyService

logger = logging.getLogger(__name__)


def _decode_key(value: str) -> bytes:
    try:
        decoded = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("key must be base64") from None
    if not decoded:
        raise ValueError("key must not be empty")
    return decoded


def _encode_key(value: Optional[bytes]) -> Optional[str]:
    if value is None:
        return None
    return base64.standard_b64encode(value).decode("ascii")


class WrapKeyBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str
    table: str = Field(min_length=1)
    column: str = Field(min_length=1)
    plain_key: bytes = Field(alias="plainKey")

    @field_validator("plain_key", mode="before")
    @classmethod
    def _decode(cls, value: Any) -> bytes:
        if not isinstance(value, str):
            raise ValueError("key must be a base64 string")
        return _decode_key(value)


class UnwrapKeyBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str
    table: str = Field(min_length=1)
    column: str = Field(min_length=1)
    wrapped_key: bytes = Field(alias="wrappedKey")

    @field_validator("wrapped_key", mode="before")
    @classmethod
    def _decode(cls, value: Any) -> bytes:
        if not isinstance(value, str):
            raise ValueError("key must be a base64 string")
        return _decode_key(value)


def _envelope(code: int, error: Optional[str], **keys: Optional[str]) -> Dict[str, Any]:
    body: Dict[str, Any] = {"code": code}
    body.update({name: value for name, value in keys.items() if value is not None})
    if error is not None:
        body["error"] = error
    return body


def get_service(request: Request) -> KeyHierarchyService:
    return request.app.state.service


def create_app(
    service: Optional[KeyHierarchyService] = None,
    lifespan: Any = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Either pass a ready ``service`` (tests) or a ``lifespan`` that sets
    ``app.state.service`` on startup (server).
    """
    app = FastAPI(title="Keystore", version="0.1.0", lifespan=lifespan)
    if service is not None:
        app.state.service = service

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> PlainTextResponse:
        return PlainTextResponse("bad request", status_code=400)

    @app.exception_handler(InternalError)
    async def _internal_error(request: Request, exc: InternalError) -> PlainTextResponse:
        return PlainTextResponse("internal error", status_code=500)

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> PlainTextResponse:
        logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
        return PlainTextResponse("internal error", status_code=500)

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/wrap")
    async def wrap(
        body: WrapKeyBody, service: KeyHierarchyService = Depends(get_service)
    ) -> JSONResponse:
        response: WrapKeyResponse = await service.wrap_key(
            WrapKeyRequest(
                token=body.token,
                table=body.table,
                column=body.column,
                plain_key=body.plain_key,
            )
        )
        return JSONResponse(
            _envelope(response.code, response.error, wrappedKey=_encode_key(response.wrapped_key))
        )

    @app.post("/unwrap")
    async def unwrap(
        body: UnwrapKeyBody, service: KeyHierarchyService = Depends(get_service)
    ) -> JSONResponse:
        response: UnwrapKeyResponse = await service.unwrap_key(
            UnwrapKeyRequest(
                token=body.token,
                table=body.table,
                column=body.column,
                wrapped_key=body.wrapped_key,
            )
        )
        return JSONResponse(
            _envelope(response.code, response.error, plainKey=_encode_key(response.plain_key))
        )

    return app
