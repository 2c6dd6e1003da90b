from typing import Any, List, Optional, Union

from pydantic import BaseModel


# Custom error response models
class ValidationErrorDetail(BaseModel):
    loc: List[Union[str, int]]
    msg: str
    input: Optional[Any] = None


class ValidationErrorResponse(BaseModel):
    errors: List[ValidationErrorDetail]
