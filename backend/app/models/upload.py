from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .recipe import new_id, utcnow

HTML_CONTENT_TYPE = "text/html"
PDF_CONTENT_TYPE = "application/pdf"


class Upload(BaseModel):
    """A stored source document. Owned by the host, read-only here."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id)
    storage_id: str = Field(..., alias="storageId")
    filename: str
    size: int = Field(..., ge=0)
    content_type: str = Field(..., alias="contentType")
    upload_date: datetime = Field(default_factory=utcnow, alias="uploadDate")
    upload_source: Optional[str] = Field(None, alias="uploadSource")
    source_url: Optional[str] = Field(None, alias="sourceUrl")

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")

    @property
    def is_pdf(self) -> bool:
        return self.content_type.split(";")[0].strip().lower() == PDF_CONTENT_TYPE

    @property
    def is_html(self) -> bool:
        return self.content_type.split(";")[0].strip().lower() == HTML_CONTENT_TYPE
