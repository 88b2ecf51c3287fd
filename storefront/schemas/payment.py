"""
Pydantic schemas for the Payment API.
The nested record is the canonical outward shape of a payment.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, Field

from storefront.models.payment import Payment


class PixDetails(BaseModel):
    """PIX "copy and paste" code plus its QR rendering."""
    code: Optional[str] = Field(None, description="Base64 PIX payload")
    qr_code: Optional[str] = Field(None, description="QR code data URL or placeholder URL")
    transaction_id: Optional[str] = Field(None, description="Generated PIX reference (DISCBOT...)")


class ApprovalInfo(BaseModel):
    """Who approved or rejected the payment, and when."""
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None


class DeliveryDetails(BaseModel):
    """Delivered account credentials, present only on COMPLETED payments."""
    method: Optional[str] = None
    delivered_at: Optional[datetime] = None
    access_credentials: Optional[dict[str, Any]] = None


class RequestMetadata(BaseModel):
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class PaymentResponse(BaseModel):
    """Payment record returned by the API."""
    id: str = Field(..., description="Unique payment identifier")
    user_id: str = Field(..., description="Buyer user id")
    user_name: str = Field(..., description="Buyer display name")
    product_id: str = Field(..., description="Purchased product id")
    product_name: str = Field(..., description="Product name snapshot")
    amount: Decimal = Field(..., ge=0, description="Final amount charged (BRL)")
    original_amount: Optional[Decimal] = Field(None, description="List price before promotion")
    promotion_id: Optional[str] = Field(None, description="Promotion applied at checkout")
    method: str = Field("PIX", description="Payment method")
    status: str = Field(..., description="PENDING, PROCESSING, COMPLETED, REJECTED, EXPIRED, CANCELLED, FAILED")
    created_at: datetime
    expires_at: datetime
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    pix_details: PixDetails = Field(default_factory=PixDetails)
    approval_info: ApprovalInfo = Field(default_factory=ApprovalInfo)
    delivery_details: Optional[DeliveryDetails] = None
    metadata: RequestMetadata = Field(default_factory=RequestMetadata)

    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentResponse":
        delivery = None
        if payment.delivery_data is not None:
            delivery = DeliveryDetails(
                method=payment.delivery_method,
                delivered_at=payment.delivered_at,
                access_credentials=payment.delivery_data,
            )
        return cls(
            id=payment.id,
            user_id=payment.user_id,
            user_name=payment.user_name,
            product_id=payment.product_id,
            product_name=payment.product_name,
            amount=payment.amount,
            original_amount=payment.original_amount,
            promotion_id=payment.promotion_id,
            method=payment.method,
            status=payment.status,
            created_at=payment.created_at,
            expires_at=payment.expires_at,
            completed_at=payment.completed_at,
            failed_at=payment.failed_at,
            pix_details=PixDetails(
                code=payment.pix_code,
                qr_code=payment.pix_qr_code,
                transaction_id=payment.pix_transaction_id,
            ),
            approval_info=ApprovalInfo(
                approved_by=payment.approved_by,
                approved_at=payment.approved_at,
                rejected_by=payment.rejected_by,
                rejected_at=payment.rejected_at,
                rejection_reason=payment.rejection_reason,
            ),
            delivery_details=delivery,
            metadata=RequestMetadata(ip_address=payment.ip_address, user_agent=payment.user_agent),
        )


class PaymentListResponse(BaseModel):
    payments: list[PaymentResponse]
    total: int


class CheckoutRequest(BaseModel):
    """Buyer-initiated checkout for a single product."""
    user_id: str = Field(..., description="Buyer user id")
    user_name: str = Field(..., description="Buyer display name")
    product_id: str = Field(..., description="Product to buy")
    promo_code: Optional[str] = Field(None, description="Optional promotion code")


class CancelRequest(BaseModel):
    user_id: str = Field(..., description="Requesting user; must be the buyer")


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500, description="Reason shown to the buyer")


class GatewayConfirmation(BaseModel):
    """Bank callback payload for a PIX transfer."""
    status: str = Field(..., description="approved/completed on success, anything else is a failure")
    transaction_id: Optional[str] = None
    receipt_id: Optional[str] = None
    reason: Optional[str] = None


class ApprovalResponse(BaseModel):
    """Approved payment plus the credentials to deliver to the buyer."""
    payment: PaymentResponse
    account_credentials: dict[str, str]
    loyalty_points: int = Field(0, description="Points credited for this purchase")


class PaymentReportRow(BaseModel):
    status: str
    total: int
    total_amount: Decimal
