"""Localized user-facing text."""

from .messages import EN_MESSAGES, Translator

__all__ = ["EN_MESSAGES", "Translator"]
