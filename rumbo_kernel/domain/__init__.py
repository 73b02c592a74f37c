"""Pure domain logic: values, DTOs, balance guard, currency conversion, clock."""

from rumbo_kernel.domain.balance_guard import BalanceCheck, BalanceCheckStatus, check_balance
from rumbo_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from rumbo_kernel.domain.currency import convert_amount, parse_exchange_rate
from rumbo_kernel.domain.dtos import ProductSummary, TransactionPage, TransactionRecord
from rumbo_kernel.domain.values import (
    NON_NEGATIVE_BALANCE_TYPES,
    ExchangeRateSnapshot,
    ProductType,
    TransactionType,
)

__all__ = [
    "BalanceCheck",
    "BalanceCheckStatus",
    "Clock",
    "DeterministicClock",
    "ExchangeRateSnapshot",
    "NON_NEGATIVE_BALANCE_TYPES",
    "ProductSummary",
    "ProductType",
    "SystemClock",
    "TransactionPage",
    "TransactionRecord",
    "TransactionType",
    "check_balance",
    "convert_amount",
    "parse_exchange_rate",
]
