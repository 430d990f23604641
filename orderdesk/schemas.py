"""
Pydantic Schemas for Request/Response Validation

Bodies of the order API. Field names are camelCase on the wire, matching
the shape the remote order service consumes and returns.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from orderdesk.models import (
    Customization,
    CustomerInfo,
    DeliveryInfo,
    DeliveryMethod,
    MenuItemRef,
    Order,
    PaymentMethod,
)


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderItemIn(ApiModel):
    """Single line of a submitted order."""
    menu_item_id: str = Field(..., min_length=1, examples=["item_avocado_juice"])
    name: str = Field(..., min_length=1, max_length=100, examples=["Avocado Juice"])
    quantity: int = Field(..., ge=1, le=99, examples=[2])
    unit_price: Decimal = Field(..., ge=0, examples=["12.00"])
    customizations: List[Customization] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=200)
    # Informational; the server prices every line itself
    line_total: Optional[Decimal] = None

    def menu_item(self) -> MenuItemRef:
        return MenuItemRef(id=self.menu_item_id, name=self.name, unit_price=self.unit_price)


class OrderCreateRequest(ApiModel):
    """Request schema for creating a new order."""
    customer: CustomerInfo
    items: List[OrderItemIn] = Field(default_factory=list)
    total_amount: Optional[Decimal] = Field(None, examples=["27.60"])
    payment_method: PaymentMethod = PaymentMethod.CASH
    delivery_method: DeliveryMethod = DeliveryMethod.PICKUP
    table_number: Optional[str] = None
    delivery_address: Optional[str] = None
    special_instructions: Optional[str] = Field(None, max_length=500)

    def delivery_info(self) -> DeliveryInfo:
        """
        Raises:
            pydantic.ValidationError: delivery order without an address
        """
        return DeliveryInfo(
            payment_method=self.payment_method,
            delivery_method=self.delivery_method,
            table_number=self.table_number,
            delivery_address=self.delivery_address,
            special_instructions=self.special_instructions,
        )


class StatusUpdateRequest(ApiModel):
    status: str = Field(..., examples=["accepted"])
    note: Optional[str] = Field(None, max_length=500)


class CancelRequest(ApiModel):
    reason: Optional[str] = Field(None, max_length=500, examples=["customer no-show"])


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderResponse(ApiModel):
    order: Order


class OrderListResponse(ApiModel):
    orders: List[Order]
    total: int


class ErrorResponse(ApiModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(ApiModel):
    """Health check response."""
    status: str
    backend: str
    fallback: Optional[dict[str, Any]] = None
    timestamp: datetime
