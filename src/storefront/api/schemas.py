"""Pydantic request/response schemas for the storefront API.

These are external contracts (anti-corruption layer), kept separate from
internal Protean commands and aggregates.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class ColorChoiceSchema(BaseModel):
    name: str
    hex: str


class TextChangeSchema(BaseModel):
    field: str
    value: str


class UploadedAssetSchema(BaseModel):
    url: str
    public_id: str | None = None


class CustomizationsSchema(BaseModel):
    colors: list[ColorChoiceSchema] = []
    text_changes: list[TextChangeSchema] = []
    uploaded_images: list[UploadedAssetSchema] = []
    uploaded_logo: UploadedAssetSchema | None = None
    customization_notes: str | None = None


class OrderItemSchema(BaseModel):
    product_id: str
    product_name: str
    quantity: int = Field(default=1, ge=1)
    unit_price: float = Field(default=0.0, ge=0)
    enable_customizations: bool
    has_customizations: bool = False
    customizations: CustomizationsSchema | None = None


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    customer_id: str | None = None
    customer_name: str | None = None
    customer_email: str
    items: list[OrderItemSchema] = Field(min_length=1)
    promo_code: str | None = None
    promo_discount: float = Field(default=0.0, ge=0)
    total: float | None = Field(default=None, ge=0)
    currency: str = "USD"
    gateway_order_id: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer_email": "jane@example.com",
                    "customer_name": "Jane Doe",
                    "items": [
                        {
                            "product_id": "prod-001",
                            "product_name": "Business Card Template",
                            "unit_price": 12.0,
                            "enable_customizations": True,
                            "customizations": {"colors": [{"name": "Red", "hex": "#FF0000"}]},
                        }
                    ],
                    "gateway_order_id": "5O190127TN364715T",
                }
            ]
        }
    }


class CapturePaymentRequest(BaseModel):
    gateway_order_id: str | None = None


class RegisterDesignFileRequest(BaseModel):
    product_id: str
    file_name: str
    file_url: str
    file_type: str
    file_size: int = Field(default=0, ge=0)
    mime_type: str | None = None
    description: str | None = None
    is_color_variant: bool = False
    color_variant_hex: str | None = None
    is_for_order: bool = False
    order_id: str | None = None
    created_by: str | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class PlaceOrderResponse(BaseModel):
    order_id: str
    order_number: str


class OrderItemResponse(BaseModel):
    index: int
    product_id: str
    product_name: str
    quantity: int
    enable_customizations: bool
    delivery_status: str
    delivery_notes: str | None = None


class HistoryEntryResponse(BaseModel):
    status: str
    note: str | None = None
    changed_by: str | None = None
    recorded_at: datetime


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    customer_email: str
    total: float
    payment_status: str
    order_status: str
    customization_status: str
    download_expiry: datetime | None = None
    items: list[OrderItemResponse]
    history: list[HistoryEntryResponse]


class FulfillmentResponse(BaseModel):
    order_id: str
    outcome: str
    order_status: str | None = None
    payment_status: str | None = None
    delivery_type: str | None = None
    requires_custom_work: bool = False
    auto_delivered_items: list[int] = []
    awaiting_items: list[int] = []
    pending_review_items: list[int] = []
    new_grants: int = 0
    error: str | None = None


class WebhookResponse(BaseModel):
    status: str
    action: str


class DesignFileIdResponse(BaseModel):
    design_file_id: str


class DownloadResponse(BaseModel):
    file_url: str
    file_name: str
    download_count: int


class StatusResponse(BaseModel):
    status: str
