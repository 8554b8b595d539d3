"""Service base for the cidery kernel (write side)."""

from cidery_kernel.services.base import BaseService

__all__ = [
    "BaseService",
]
