"""
API routes for fee collection.

PaymentError subclasses raised by the service are turned into responses by
the exception handler in api/main.py, so routes only deal in the happy path.
"""
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, Header, Request, Response, status
from fastapi.exceptions import RequestValidationError
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import ValidationError as PydanticValidationError

from schoolup_payments.core.service import PaymentService
from schoolup_payments.integrations.webhook_handler import SIGNATURE_HEADER, MoMoWebhookHandler
from schoolup_payments.monitoring.health import HealthCheck

from .schemas import (
    BalanceResponse,
    HealthCheckResponse,
    InitiatePaymentRequest,
    ManualPaymentRequest,
    MarkReadRequest,
    MessageResponse,
    PaymentResponse,
    SendMessageRequest,
    TransactionResponse,
    WebhookAck,
    WebhookDelivery,
)

logger = structlog.get_logger(__name__)

payment_router = APIRouter(prefix="/payments", tags=["payments"])
student_router = APIRouter(prefix="/students", tags=["students"])
inbox_router = APIRouter(prefix="/inbox", tags=["inbox"])
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])
monitoring_router = APIRouter(tags=["monitoring"])


def get_service(request: Request) -> PaymentService:
    return request.app.state.service


def get_webhook_handler(request: Request) -> MoMoWebhookHandler:
    return request.app.state.webhook_handler


def get_health_check(request: Request) -> HealthCheck:
    return request.app.state.health_check


@payment_router.post(
    "/momo",
    response_model=TransactionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Initiate a mobile-money payment",
    description="Record a PENDING transaction and push a USSD prompt to the payer's phone",
)
async def initiate_momo_payment(
    request: InitiatePaymentRequest,
    service: PaymentService = Depends(get_service),
) -> Any:
    """
    Start a collection.

    The response is always PENDING. Poll GET /payments/transactions/{id} or
    wait for the receipt in the payer's inbox.
    """
    logger.info(
        "api_initiate_payment_request",
        student_id=request.student_id,
        amount=str(request.amount),
        network=request.network,
    )
    transaction = await service.initiate(
        student_id=request.student_id,
        amount=request.amount,
        payer_phone=request.payer_phone,
        network=request.network,
        payer_id=request.payer_id,
    )
    return transaction


@payment_router.get(
    "/transactions/{transaction_id}",
    response_model=TransactionResponse,
    summary="Get transaction status",
)
async def get_transaction(
    transaction_id: str,
    service: PaymentService = Depends(get_service),
) -> Any:
    return await service.get_transaction(transaction_id)


@payment_router.post(
    "/manual",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a cash or bank payment",
)
async def record_manual_payment(
    request: ManualPaymentRequest,
    service: PaymentService = Depends(get_service),
) -> Any:
    logger.info(
        "api_manual_payment_request",
        student_id=request.student_id,
        amount=str(request.amount),
        method=request.method,
    )
    return await service.record_manual_payment(
        student_id=request.student_id, amount=request.amount, method=request.method
    )


@student_router.get(
    "/{student_id}/balance",
    response_model=BalanceResponse,
    summary="Outstanding balance",
    description="Fees due for the term minus payments recorded (defaults to the current term)",
)
async def get_balance(
    student_id: str,
    term: Optional[int] = None,
    service: PaymentService = Depends(get_service),
) -> Any:
    summary = await service.outstanding_balance(student_id, term=term)
    return BalanceResponse.model_validate(summary)


@student_router.get(
    "/{student_id}/payments",
    response_model=List[PaymentResponse],
    summary="Payment history",
)
async def list_student_payments(
    student_id: str,
    service: PaymentService = Depends(get_service),
) -> Any:
    return await service.list_payments(student_id=student_id)


@inbox_router.get(
    "/{user_id}",
    response_model=List[MessageResponse],
    summary="Messages sent or received by a user",
)
async def get_inbox(
    user_id: str,
    service: PaymentService = Depends(get_service),
) -> Any:
    return await service.get_messages(user_id)


@inbox_router.post(
    "/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a portal message",
)
async def send_message(
    request: SendMessageRequest,
    service: PaymentService = Depends(get_service),
) -> Any:
    return await service.send_message(request.sender_id, request.receiver_id, request.content)


@inbox_router.post(
    "/messages/{message_id}/read",
    response_model=MessageResponse,
    summary="Mark a message read (receiver only)",
)
async def mark_message_read(
    message_id: str,
    request: MarkReadRequest,
    service: PaymentService = Depends(get_service),
) -> Any:
    return await service.mark_read(message_id, request.reader_id)


@webhook_router.post(
    "/momo",
    response_model=WebhookAck,
    summary="Mobile-money confirmation webhook",
    description=(
        "Receives MTN MoMo / Airtel Money outcomes. Every well-formed, authenticated "
        "delivery is acknowledged with 200, including duplicates and unknown ids."
    ),
)
async def momo_webhook(
    request: Request,
    momo_signature: Optional[str] = Header(default=None, alias=SIGNATURE_HEADER),
    handler: MoMoWebhookHandler = Depends(get_webhook_handler),
) -> Dict[str, Any]:
    body = await request.body()

    # Signature covers the raw bytes, so verify before parsing
    handler.verify_signature(body, momo_signature)

    try:
        delivery = WebhookDelivery.model_validate_json(body)
    except PydanticValidationError as e:
        logger.warning("api_webhook_malformed_payload", errors=e.error_count())
        raise RequestValidationError(e.errors(include_url=False, include_context=False))

    return await handler.process_delivery(
        transaction_id=delivery.transaction_id,
        status=delivery.status,
        amount=delivery.amount,
        external_ref=delivery.external_ref,
    )


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
)
async def health(
    response: Response,
    health_check: HealthCheck = Depends(get_health_check),
) -> Dict[str, Any]:
    result = await health_check.check_all()
    if result["status"] != "healthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return result


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
)
async def liveness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    return await health_check.liveness()


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
