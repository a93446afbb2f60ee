"""
Counter Store API Layer.

This package handles all communication with the remote upvote counter store.
"""

from .client import CounterStoreClient

__all__ = ["CounterStoreClient"]
