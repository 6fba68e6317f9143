from typing import Any, Optional
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def success_response(
    data: Any = None,
    message: str = "Success",
    status_code: int = 200
) -> JSONResponse:
    """Standard success response"""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": True,
            "message": message,
            "data": jsonable_encoder(data)
        }
    )


def error_response(
    message: str = "Error occurred",
    errors: Optional[Any] = None,
    status_code: int = 400,
    error_type: Optional[str] = None
) -> JSONResponse:
    """Standard error response"""
    content = {
        "success": False,
        "message": message
    }

    if error_type:
        content["error_type"] = error_type

    if errors:
        content["errors"] = errors

    return JSONResponse(
        status_code=status_code,
        content=content
    )
