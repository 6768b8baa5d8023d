from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class SendResult:
    message_id: str | None


class ProviderClient(Protocol):
    """Outbound messaging provider.

    ``send_message`` raises a subclass of ``DeliveryError`` on failure:
    ``PermanentDeliveryError`` subclasses when a retry can never help,
    ``TransientDeliveryError`` subclasses otherwise.
    """

    async def send_message(self, recipient: str, payload: dict[str, Any]) -> SendResult: ...
