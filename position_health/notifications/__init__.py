"""Notification modules."""
from .ntfy import NtfyNotifier
from .telegram import TelegramNotifier

__all__ = ["NtfyNotifier", "TelegramNotifier"]
