"""Scoring rules for the sports the club records."""

from . import padel

__all__ = ["padel"]
