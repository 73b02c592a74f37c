"""
Rumbo Kernel

Personal finance core with:
- Financial products (accounts) and their transaction history
- Non-negative balance enforcement for restricted product types
- Atomic two-sided transfers, optionally across COP/USD
- A time-bounded cache over the daily TRM feed
"""

__version__ = "0.1.0"
