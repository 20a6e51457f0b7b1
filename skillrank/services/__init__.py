"""
Services package for the rating engine.

Batch and read-side services built on BaseService session management.
"""

from .base import BaseService

__all__ = ['BaseService']
