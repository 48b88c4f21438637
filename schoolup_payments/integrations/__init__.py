"""Mobile network integrations."""
from .momo_simulator import MoMoNetworkSimulator
from .webhook_handler import MoMoWebhookHandler, compute_signature

__all__ = ["MoMoNetworkSimulator", "MoMoWebhookHandler", "compute_signature"]
