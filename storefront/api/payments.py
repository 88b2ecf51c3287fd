"""
Payment API endpoints.
Checkout, status and cancellation for buyers; approval queue and bank callback for admins.
"""

from fastapi import APIRouter, Depends, Query, Request, status

from storefront.api.deps import get_payments, require_admin, unwrap
from storefront.schemas.payment import (
    ApprovalResponse,
    CancelRequest,
    CheckoutRequest,
    GatewayConfirmation,
    PaymentListResponse,
    PaymentReportRow,
    PaymentResponse,
    RejectRequest,
)
from storefront.services.payments import PaymentService

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(
    checkout: CheckoutRequest,
    request: Request,
    payments: PaymentService = Depends(get_payments),
):
    """Open a PIX payment; the price includes the best applicable promotion."""
    payment = unwrap(payments.create_payment(
        buyer_id=checkout.user_id,
        buyer_name=checkout.user_name,
        product_id=checkout.product_id,
        promo_code=checkout.promo_code,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    ))
    return PaymentResponse.from_payment(payment)


@router.get("/pending", response_model=PaymentListResponse)
async def pending_approvals(
    admin_id: str = Depends(require_admin),
    payments: PaymentService = Depends(get_payments),
):
    pending = [PaymentResponse.from_payment(p) for p in payments.list_pending_approvals()]
    return PaymentListResponse(payments=pending, total=len(pending))


@router.get("/report", response_model=list[PaymentReportRow])
async def payment_report(
    days: int = Query(30, ge=1, le=365),
    admin_id: str = Depends(require_admin),
    payments: PaymentService = Depends(get_payments),
):
    return payments.payment_report(days)


@router.post("/sweep")
async def sweep_expired(
    admin_id: str = Depends(require_admin),
    payments: PaymentService = Depends(get_payments),
):
    return {"expired": payments.sweep_expired_payments()}


@router.get("/user/{user_id}/pending", response_model=PaymentListResponse)
async def user_pending(user_id: str, payments: PaymentService = Depends(get_payments)):
    pending = [PaymentResponse.from_payment(p) for p in payments.list_user_pending(user_id)]
    return PaymentListResponse(payments=pending, total=len(pending))


@router.get("/{payment_id}", response_model=PaymentResponse)
async def payment_status(payment_id: str, payments: PaymentService = Depends(get_payments)):
    """Current payment state; overdue PENDING payments are expired on read."""
    return PaymentResponse.from_payment(unwrap(payments.check_status(payment_id)))


@router.post("/{payment_id}/cancel", response_model=PaymentResponse)
async def cancel_payment(
    payment_id: str,
    body: CancelRequest,
    payments: PaymentService = Depends(get_payments),
):
    return PaymentResponse.from_payment(unwrap(payments.cancel(payment_id, body.user_id)))


@router.post("/{payment_id}/gateway", response_model=PaymentResponse)
async def gateway_confirmation(
    payment_id: str,
    body: GatewayConfirmation,
    admin_id: str = Depends(require_admin),
    payments: PaymentService = Depends(get_payments),
):
    """Bank callback for a PIX transfer."""
    return PaymentResponse.from_payment(unwrap(payments.confirm_from_gateway(payment_id, body)))


@router.post("/{payment_id}/approve", response_model=ApprovalResponse)
async def approve_payment(
    payment_id: str,
    admin_id: str = Depends(require_admin),
    payments: PaymentService = Depends(get_payments),
):
    return unwrap(payments.approve(payment_id, admin_id))


@router.post("/{payment_id}/reject", response_model=PaymentResponse)
async def reject_payment(
    payment_id: str,
    body: RejectRequest,
    admin_id: str = Depends(require_admin),
    payments: PaymentService = Depends(get_payments),
):
    return PaymentResponse.from_payment(unwrap(payments.reject(payment_id, body.reason, admin_id)))
