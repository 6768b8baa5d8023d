"""Import all models so metadata.create_all can discover them via Base.metadata."""
from guest_messaging.infrastructure.db.models.queue_item import QueueItemModel
from guest_messaging.infrastructure.db.models.rate_window import RateWindowModel

__all__ = [
    "QueueItemModel",
    "RateWindowModel",
]
