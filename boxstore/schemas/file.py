"""File API schemas."""

from pydantic import BaseModel, Field


class FileUploadResponse(BaseModel):
    """Response for a successful upload: the generated filename."""

    filename: str = Field(..., description="Generated name, e.g. 'clx0abc123.png'")
