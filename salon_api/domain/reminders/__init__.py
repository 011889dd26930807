"""
Reminders Domain

WhatsApp appointment reminders: the daily confirmation job, its provider
adapters and the message log.
"""

from .router import router

__all__ = ["router"]
