from typing import Any, Dict, Optional

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def api_response(
    *,
    data: Optional[Any] = None,
    message: str = "Operation successful",
    status_code: int = status.HTTP_200_OK,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """
    Envelope shared by every API response:

        {"status_code": ..., "status": "success" | "error", "message": ..., "data": ...}

    `status` is "error" for any code >= 400. `data` may be a pydantic model,
    a list of them or plain JSON-able values; None becomes {}.
    """
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content={
            "status_code": status_code,
            "status": "success" if status_code < 400 else "error",
            "message": message,
            "data": jsonable_encoder(data) if data is not None else {},
        },
    )
