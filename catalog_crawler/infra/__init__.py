"""Infra layer utilities (cache storage)."""

from .storage import CacheStore

__all__ = ["CacheStore"]
