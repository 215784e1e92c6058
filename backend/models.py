"""
Pydantic models for request/response validation.

Status fields accept either the integer value (1-5) or the label
("pending" ... "cancelled"); responses always carry the label.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Optional, Union

from domain.constants import (
    PAYMENT_TIMEOUT_MINUTES_MIN,
    PAYMENT_TIMEOUT_MINUTES_MAX,
    PROCESSING_TIMEOUT_HOURS_MIN,
    PROCESSING_TIMEOUT_HOURS_MAX,
)
from domain.enums import OrderStatus, OperatorType, ProcessingTimeoutAction


class ApiBase(BaseModel):
    """Shared base — allows construction by Python name or alias."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


def _parse_status(value):
    try:
        return OrderStatus.parse(value)
    except ValueError as e:
        raise ValueError(str(e))


# ── Order Models ────────────────────────────────────────────────────

class CreateOrderRequest(ApiBase):
    """Create an order in Pending status."""
    merchant_id: int = Field(..., alias="merchantId", ge=1)
    customer_id: int = Field(..., alias="customerId", ge=1)
    order_number: Optional[str] = Field(
        default=None,
        alias="orderNumber",
        max_length=64,
        description="Generated when omitted",
    )


class OrderResponse(ApiBase):
    id: int
    tenant_id: int = Field(..., alias="tenantId")
    merchant_id: int = Field(..., alias="merchantId")
    customer_id: int = Field(..., alias="customerId")
    order_number: str = Field(..., alias="orderNumber")
    status: str
    status_updated_at: Optional[str] = Field(None, alias="statusUpdatedAt")
    created_at: Optional[str] = Field(None, alias="createdAt")


# ── Status Models ───────────────────────────────────────────────────

class UpdateOrderStatusRequest(ApiBase):
    """Manual status change for one order."""
    status: Union[int, str] = Field(..., description="Target status (value or label)")
    reason: str = Field(..., min_length=1, max_length=255)
    operator_type: OperatorType = Field(OperatorType.MERCHANT, alias="operatorType")
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _parse_status(v)


class BatchUpdateOrderStatusRequest(ApiBase):
    """Same status change applied to many orders, each independently."""
    order_ids: List[int] = Field(..., alias="orderIds", min_length=1)
    status: Union[int, str] = Field(..., description="Target status (value or label)")
    reason: str = Field(..., min_length=1, max_length=255)
    operator_type: OperatorType = Field(OperatorType.MERCHANT, alias="operatorType")
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _parse_status(v)


class BatchFailureResponse(ApiBase):
    order_id: int = Field(..., alias="orderId")
    from_status: Optional[str] = Field(None, alias="fromStatus")
    to_status: str = Field(..., alias="toStatus")
    message: str
    code: str


class BatchUpdateOrderStatusResponse(ApiBase):
    success_count: int = Field(..., alias="successCount")
    fail_count: int = Field(..., alias="failCount")
    failures: List[BatchFailureResponse] = []
    succeeded_ids: List[int] = Field(default_factory=list, alias="succeededIds")


class OrderStatusHistoryResponse(ApiBase):
    id: int
    order_id: int = Field(..., alias="orderId")
    from_status: str = Field(..., alias="fromStatus")
    to_status: str = Field(..., alias="toStatus")
    reason: str
    operator_type: str = Field(..., alias="operatorType")
    operator_id: Optional[int] = Field(None, alias="operatorId")
    metadata: Dict[str, Any] = {}
    created_at: Optional[str] = Field(None, alias="createdAt")


# ── Timeout Config Models ──────────────────────────────────────────

class TimeoutConfigCreateRequest(ApiBase):
    """Tenant default when merchant_id is omitted, merchant override otherwise."""
    merchant_id: Optional[int] = Field(default=None, alias="merchantId", ge=1)
    payment_timeout_minutes: int = Field(
        ...,
        alias="paymentTimeoutMinutes",
        ge=PAYMENT_TIMEOUT_MINUTES_MIN,
        le=PAYMENT_TIMEOUT_MINUTES_MAX,
    )
    processing_timeout_hours: int = Field(
        ...,
        alias="processingTimeoutHours",
        ge=PROCESSING_TIMEOUT_HOURS_MIN,
        le=PROCESSING_TIMEOUT_HOURS_MAX,
    )
    processing_timeout_action: ProcessingTimeoutAction = Field(
        ProcessingTimeoutAction.CANCEL, alias="processingTimeoutAction"
    )


class TimeoutConfigUpdateRequest(ApiBase):
    payment_timeout_minutes: Optional[int] = Field(
        None,
        alias="paymentTimeoutMinutes",
        ge=PAYMENT_TIMEOUT_MINUTES_MIN,
        le=PAYMENT_TIMEOUT_MINUTES_MAX,
    )
    processing_timeout_hours: Optional[int] = Field(
        None,
        alias="processingTimeoutHours",
        ge=PROCESSING_TIMEOUT_HOURS_MIN,
        le=PROCESSING_TIMEOUT_HOURS_MAX,
    )
    processing_timeout_action: Optional[ProcessingTimeoutAction] = Field(
        None, alias="processingTimeoutAction"
    )


class TimeoutConfigResponse(ApiBase):
    id: int
    tenant_id: int = Field(..., alias="tenantId")
    merchant_id: Optional[int] = Field(None, alias="merchantId")
    payment_timeout_minutes: int = Field(..., alias="paymentTimeoutMinutes")
    processing_timeout_hours: int = Field(..., alias="processingTimeoutHours")
    processing_timeout_action: str = Field(..., alias="processingTimeoutAction")
    created_at: Optional[str] = Field(None, alias="createdAt")
    updated_at: Optional[str] = Field(None, alias="updatedAt")


# ── Scanner Models ─────────────────────────────────────────────────

class ScannerStartRequest(ApiBase):
    interval_seconds: Optional[int] = Field(
        default=None,
        alias="intervalSeconds",
        ge=1,
        le=86_400,
        description="Tick interval; keeps the configured value when omitted",
    )
