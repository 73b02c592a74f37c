"""Services for the rumbo kernel (write side)."""

from rumbo_kernel.services.exchange_rate_cache import (
    CacheState,
    ExchangeRateCache,
    RateLookup,
    RateLookupStatus,
    TrmClient,
)
from rumbo_kernel.services.product_service import ProductService
from rumbo_kernel.services.transaction_service import TransactionService
from rumbo_kernel.services.transfer_orchestrator import (
    TransferOrchestrator,
    TransferResult,
    TransferStatus,
)

__all__ = [
    "CacheState",
    "ExchangeRateCache",
    "ProductService",
    "RateLookup",
    "RateLookupStatus",
    "TransactionService",
    "TransferOrchestrator",
    "TransferResult",
    "TransferStatus",
    "TrmClient",
]
