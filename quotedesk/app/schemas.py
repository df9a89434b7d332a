from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from quotedesk.app.models import QuoteStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UploadURLResponse(CamelModel):
    upload_url: str = Field(..., alias="uploadURL")
    object_path: str


class DownloadURLResponse(CamelModel):
    download_url: str = Field(..., alias="downloadURL")
    expires_in: int


class QuoteFileUpload(CamelModel):
    upload_url: str = Field(..., alias="uploadURL", min_length=1)
    name: str = Field(..., min_length=1, max_length=255)
    size: Optional[int] = Field(None, ge=0)


class QuoteCreate(CamelModel):
    service: str = Field(..., min_length=1, max_length=64)
    part_name: Optional[str] = Field(None, max_length=255)
    material: Optional[str] = Field(None, max_length=128)
    quantity: int = Field(1, ge=1)
    finish_types: List[str] = Field(default_factory=list)
    quality_standard: Optional[str] = Field(None, max_length=32)
    notes: Optional[str] = None
    target_price: Optional[Decimal] = Field(None, ge=0)
    files: List[QuoteFileUpload] = Field(..., min_length=1)

    @field_validator("service")
    @classmethod
    def strip_service(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("service must not be blank")
        return v


class QuoteStatusUpdate(CamelModel):
    status: QuoteStatus
    notes: Optional[str] = None


class QuotePriceUpdate(CamelModel):
    final_price: Decimal


class QuoteFileOut(CamelModel):
    id: str
    quote_id: str
    file_name: str
    file_path: str
    file_type: str
    file_size: int
    created_at: datetime


class StatusHistoryOut(CamelModel):
    id: int
    status: QuoteStatus
    notes: Optional[str] = None
    actor_id: str
    created_at: datetime


class QuoteOut(CamelModel):
    id: str
    user_id: str
    service: str
    part_name: Optional[str] = None
    material: Optional[str] = None
    quantity: int
    finish_types: List[str] = Field(default_factory=list)
    quality_standard: Optional[str] = None
    notes: Optional[str] = None
    status: QuoteStatus
    target_price: Optional[Decimal] = None
    final_price: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime
    files: List[QuoteFileOut] = Field(default_factory=list)


class QuoteDetail(QuoteOut):
    status_history: List[StatusHistoryOut] = Field(default_factory=list)
