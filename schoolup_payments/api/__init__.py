"""FastAPI application and routes."""
from .main import create_app
from .schemas import (
    InitiatePaymentRequest,
    TransactionResponse,
    WebhookAck,
    WebhookDelivery,
)

__all__ = [
    "create_app",
    "InitiatePaymentRequest",
    "TransactionResponse",
    "WebhookAck",
    "WebhookDelivery",
]
