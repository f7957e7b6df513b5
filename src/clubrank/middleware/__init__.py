# src/clubrank/middleware/__init__.py

"""Middleware components for ClubRank API."""

from .logging import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
