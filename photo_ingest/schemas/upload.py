"""
Upload Schema Definitions.

This module defines Pydantic models for the ingestion and gallery
endpoints. Field names follow the JSON the gallery front end consumes
(``fileUrl``, ``fileName``), exposed through aliases.

Models:
    - UploadResponse: Response model for a successful upload
    - PhotoItem: One entry of the gallery listing
"""

from pydantic import BaseModel, ConfigDict, Field


class UploadResponse(BaseModel):
    """
    Response model for a successful upload.

    Attributes:
        message: Human-readable status message.
        file_url: Public URL of the stored object.
        file_name: Storage key of the stored object.

    Example:
        {
            "message": "Image uploaded successfully",
            "fileUrl": "https://s3.example.com/photos/2024/01/15/550e8400-e29b-41d4-a716-446655440000.jpg",
            "fileName": "2024/01/15/550e8400-e29b-41d4-a716-446655440000.jpg"
        }
    """

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(
        default="Image uploaded successfully",
        description="Human-readable status message",
    )
    file_url: str = Field(
        ...,
        alias="fileUrl",
        description="Public URL of the stored object",
    )
    file_name: str = Field(
        ...,
        alias="fileName",
        description="Storage key in the form YYYY/MM/DD/<uuid><ext>",
    )


class PhotoItem(BaseModel):
    """
    One object under today's partition.

    Attributes:
        key: Storage key.
        url: Public URL of the object.
    """

    key: str = Field(..., description="Storage key")
    url: str = Field(..., description="Public URL of the object")


__all__ = [
    "UploadResponse",
    "PhotoItem",
]
