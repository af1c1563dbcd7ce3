"""Validation package."""

from cospend.validation.validator import DraftValidator

__all__ = ["DraftValidator"]
