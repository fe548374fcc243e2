"""FastAPI routes for the storefront: checkout, payment, webhooks, design files."""

import json

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from protean.utils.globals import current_domain

from storefront.access.downloads import RecordDownload
from storefront.api.schemas import (
    CapturePaymentRequest,
    DesignFileIdResponse,
    DownloadResponse,
    FulfillmentResponse,
    HistoryEntryResponse,
    OrderItemResponse,
    OrderResponse,
    PlaceOrderRequest,
    PlaceOrderResponse,
    RegisterDesignFileRequest,
    StatusResponse,
    WebhookResponse,
)
from storefront.catalogue.registration import DeactivateDesignFile, RegisterDesignFile
from storefront.delivery.orchestrator import FulfillmentIncomplete, FulfillmentResult
from storefront.gateway import get_gateway
from storefront.order.order import Order
from storefront.order.payment import capture_payment, complete_free_order
from storefront.order.placement import PlaceOrder
from storefront.order.webhook import PayPalWebhookEvent, process_webhook_event


def _fulfillment_response(result: FulfillmentResult) -> FulfillmentResponse:
    return FulfillmentResponse(
        order_id=result.order_id,
        outcome=result.outcome.value,
        order_status=result.order_status,
        payment_status=result.payment_status,
        delivery_type=result.delivery_type,
        requires_custom_work=result.requires_custom_work,
        auto_delivered_items=list(result.auto_delivered_items),
        awaiting_items=list(result.awaiting_items),
        pending_review_items=list(result.pending_review_items),
        new_grants=result.new_grants,
        error=result.error,
    )


def _incomplete_response(exc: FulfillmentIncomplete) -> JSONResponse:
    return JSONResponse(
        status_code=202,
        content={"order_id": exc.order_id, "payment": "captured", "fulfillment": "incomplete"},
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=PlaceOrderResponse)
async def place_order(body: PlaceOrderRequest) -> PlaceOrderResponse:
    """Check out: create an unpaid order."""
    items = [item.model_dump() for item in body.items]
    command = PlaceOrder(
        customer_id=body.customer_id,
        customer_name=body.customer_name,
        customer_email=body.customer_email,
        items=json.dumps(items),
        promo_code=body.promo_code,
        promo_discount=body.promo_discount,
        total=body.total,
        currency=body.currency,
        gateway_order_id=body.gateway_order_id,
    )
    order_id = current_domain.process(command, asynchronous=False)
    order = current_domain.repository_for(Order).get(order_id)
    return PlaceOrderResponse(order_id=order_id, order_number=order.order_number)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    order = current_domain.repository_for(Order).get(order_id)
    return OrderResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        customer_email=order.customer_email,
        total=order.total or 0.0,
        payment_status=order.payment_status,
        order_status=order.order_status,
        customization_status=order.customization_status,
        download_expiry=order.download_expiry,
        items=[
            OrderItemResponse(
                index=item.position,
                product_id=str(item.product_id),
                product_name=item.product_name,
                quantity=item.quantity,
                enable_customizations=item.enable_customizations,
                delivery_status=item.delivery_status,
                delivery_notes=item.delivery_notes,
            )
            for item in order.sorted_items()
        ],
        history=[
            HistoryEntryResponse(
                status=entry.status,
                note=entry.note,
                changed_by=entry.changed_by,
                recorded_at=entry.recorded_at,
            )
            for entry in sorted(order.order_history or [], key=lambda e: e.recorded_at)
        ],
    )


@order_router.post("/{order_id}/capture", response_model=FulfillmentResponse)
async def capture_order_payment(order_id: str, body: CapturePaymentRequest | None = None):
    """Capture the approved PayPal checkout, then fulfill the order."""
    try:
        result = capture_payment(order_id, body.gateway_order_id if body else None)
    except FulfillmentIncomplete as exc:
        return _incomplete_response(exc)
    if result.error and result.payment_status == "failed":
        raise HTTPException(status_code=402, detail=result.error)
    return _fulfillment_response(result)


@order_router.post("/{order_id}/complete-free", response_model=FulfillmentResponse)
async def complete_free(order_id: str):
    """Settle and fulfill a zero-total order."""
    try:
        result = complete_free_order(order_id)
    except FulfillmentIncomplete as exc:
        return _incomplete_response(exc)
    return _fulfillment_response(result)


@order_router.get("/{order_id}/files/{design_file_id}/download", response_model=DownloadResponse)
async def download_file(order_id: str, design_file_id: str) -> DownloadResponse:
    """Record a download through the order's grant and return the file location."""
    result = current_domain.process(
        RecordDownload(order_id=order_id, design_file_id=design_file_id),
        asynchronous=False,
    )
    return DownloadResponse(**result)


# ---------------------------------------------------------------------------
# PayPal Router
# ---------------------------------------------------------------------------
paypal_router = APIRouter(prefix="/paypal", tags=["paypal"])


@paypal_router.post("/webhook", response_model=WebhookResponse)
async def paypal_webhook(request: Request) -> WebhookResponse:
    """Receive a PayPal webhook delivery."""
    body = (await request.body()).decode("utf-8")
    headers = {k.lower(): v for k, v in request.headers.items()}
    if not get_gateway().verify_webhook_signature(headers, body):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        event = PayPalWebhookEvent.from_payload(json.loads(body))
    except (ValueError, KeyError) as exc:
        raise HTTPException(status_code=400, detail=f"Malformed webhook payload: {exc}") from exc

    try:
        outcome = process_webhook_event(event)
    except FulfillmentIncomplete:
        # Non-2xx makes PayPal redeliver; the event stays unprocessed
        raise HTTPException(status_code=503, detail="Fulfillment incomplete, retry later") from None
    return WebhookResponse(status="processed", action=outcome.action)


# ---------------------------------------------------------------------------
# Design File Router
# ---------------------------------------------------------------------------
design_file_router = APIRouter(prefix="/design-files", tags=["design-files"])


@design_file_router.post("", status_code=201, response_model=DesignFileIdResponse)
async def register_design_file(body: RegisterDesignFileRequest) -> DesignFileIdResponse:
    command = RegisterDesignFile(**body.model_dump())
    design_file_id = current_domain.process(command, asynchronous=False)
    return DesignFileIdResponse(design_file_id=design_file_id)


@design_file_router.delete("/{design_file_id}", response_model=StatusResponse)
async def deactivate_design_file(design_file_id: str) -> StatusResponse:
    current_domain.process(DeactivateDesignFile(design_file_id=design_file_id), asynchronous=False)
    return StatusResponse(status="deactivated")
