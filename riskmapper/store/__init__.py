"""Persistence layer: atomic report lifecycle writes and the reads around them."""

from riskmapper.store.store import Store, is_retryable_tx_error

__all__ = ["Store", "is_retryable_tx_error"]
