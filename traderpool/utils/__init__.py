"""Utility helpers."""

from traderpool.utils.log import configure_logging

__all__ = ["configure_logging"]
