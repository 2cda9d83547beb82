"""Upload data models."""

from pydantic import BaseModel


class UploadSuccessResponse(BaseModel):
    """Response model for a relayed upload."""

    success: bool = True
    url: str
    filename: str


class ErrorResponse(BaseModel):
    """Response model for any failed request."""

    error: str
    code: str
