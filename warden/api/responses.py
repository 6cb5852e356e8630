"""
Response envelope.

Every answer, success or failure, has the same shape:

    {"status_code": 200, "description": "OK", "data": {...}}

``data`` is omitted when there is nothing to return.
"""

from __future__ import annotations

from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def envelope(status_code: int, description: str, data: Any = None) -> dict[str, Any]:
    body: dict[str, Any] = {"status_code": status_code, "description": description}
    if data is not None:
        body["data"] = jsonable_encoder(data)
    return body


def respond(
    status_code: int,
    description: str,
    data: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=envelope(status_code, description, data),
        headers=headers,
    )


def ok(data: Any = None, description: str = "OK") -> JSONResponse:
    return respond(200, description, data)


def created(data: Any = None, description: str = "Created") -> JSONResponse:
    return respond(201, description, data)
