"""Telephony provider implementations."""

from .voximplant import VoximplantProvider

__all__ = ["VoximplantProvider"]
