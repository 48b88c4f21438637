"""Background workers for async processing."""
from .background import BackgroundWorkers

__all__ = ["BackgroundWorkers"]
