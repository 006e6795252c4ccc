"""Unified async client for LLM provider wire protocols."""

from .utils.logger import setup_logging

__all__ = ["setup_logging"]
