from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from photo_ingest.schemas.errors import ValidationErrorDetail, ValidationErrorResponse


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()

    formatted_errors = [
        ValidationErrorDetail(
            loc=list(error["loc"]), msg=error["msg"], input=error.get("input")
        )
        for error in errors
    ]

    error_response = ValidationErrorResponse(errors=formatted_errors)

    return JSONResponse(
        status_code=422, content=jsonable_encoder(error_response.model_dump())
    )
