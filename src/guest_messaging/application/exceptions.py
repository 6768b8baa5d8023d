from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class ValidationError(AppError):
    pass


class StoreError(AppError):
    """The queue database could not be read or written."""


class LeaseLostError(AppError):
    """The item is no longer processing under the claim that tried to settle it."""


class DeliveryError(AppError):
    """A provider send did not go through."""


class TransientDeliveryError(DeliveryError):
    """May succeed on a later attempt; consumes one retry."""


class PermanentDeliveryError(DeliveryError):
    """Will never succeed; the item fails without consuming the retry budget."""


class NetworkError(TransientDeliveryError):
    pass


class ProviderError(TransientDeliveryError):
    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        super().__init__(detail or f"Provider returned HTTP {status_code}")


class ProviderRejectedError(PermanentDeliveryError):
    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        super().__init__(detail or f"Provider rejected message with HTTP {status_code}")


class InvalidRecipientError(PermanentDeliveryError):
    pass


class InvalidPayloadError(PermanentDeliveryError):
    pass
