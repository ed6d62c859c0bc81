"""API routers package."""

from autosave.api import deps, savings, wallets, webhooks

__all__ = [
    "webhooks",
    "wallets",
    "savings",
    "deps",
]
