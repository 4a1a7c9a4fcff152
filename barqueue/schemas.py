"""
Pydantic Schemas for Request/Response Validation
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from barqueue.services.order_queue.base import Order
from barqueue.services.stock import StockRecord


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class DirectOrderCreate(BaseModel):
    """Order placed from the web menu."""
    drink_text: Optional[str] = Field(None, max_length=200, examples=["I'd like to order the Margarita!"])
    canonical_id: Optional[str] = Field(None, max_length=100, examples=["margarita"])
    customer_name: Optional[str] = Field(None, max_length=100, examples=["Alice"])
    client_tag: Optional[str] = Field(None, max_length=100, examples=["c0ffee"])

    @model_validator(mode="after")
    def require_drink(self) -> "DirectOrderCreate":
        if not (self.drink_text and self.drink_text.strip()) and not self.canonical_id:
            raise ValueError("Either drink_text or canonical_id is required")
        return self


class DoneRequest(BaseModel):
    id: int = Field(..., ge=1, examples=[42])


class StockAdjust(BaseModel):
    """Relative (``delta``) or absolute stock change; exactly one of them."""
    id: int = Field(..., ge=1, examples=[3])
    delta: Optional[int] = Field(None, examples=[-1, 12])
    absolute: Optional[int] = Field(None, examples=[24])

    @model_validator(mode="after")
    def exactly_one_change(self) -> "StockAdjust":
        if (self.delta is None) == (self.absolute is None):
            raise ValueError("Provide exactly one of delta or absolute")
        return self


class DrinkCreate(BaseModel):
    canonical: str = Field(..., min_length=1, max_length=100, examples=["negroni"])
    display_name: str = Field(..., min_length=1, max_length=100, examples=["Negroni"])
    stock_count: int = Field(default=0, ge=0)
    description: Optional[str] = Field(None, max_length=500)
    image_url: Optional[str] = Field(None, max_length=500)


class PushSubscribe(BaseModel):
    client_tag: str = Field(..., min_length=1, max_length=100)
    player_id: str = Field(..., min_length=1, max_length=100)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderResponse(BaseModel):
    id: int
    source_channel: str
    customer_ref: str
    customer_display_name: str
    canonical_drink_id: str
    display_name: str
    raw_order_text: str
    created_at: datetime
    client_tag: Optional[str] = None

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(**order.to_dict())


class QueueResponse(BaseModel):
    total: int
    orders: list[OrderResponse]


class DrinkResponse(BaseModel):
    id: int
    canonical: str
    display_name: str
    stock_count: int
    description: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def from_record(cls, record: StockRecord) -> "DrinkResponse":
        return cls(**record.to_dict())


class ClearResponse(BaseModel):
    success: bool = True
    cleared: int


class ReloadResponse(BaseModel):
    success: bool = True
    drinks: int
    version: int


class SeedResponse(BaseModel):
    success: bool = True
    seeded: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[Any] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    queue: str
    broadcaster: str
    transports: dict[str, str]
    catalog_version: int
    timestamp: datetime
