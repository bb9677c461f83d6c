"""Transactional email triggered by subscription changes."""

from .mailer import EmailNotifier
from .messages import EmailContent, cancellation_message, welcome_message

__all__ = [
    "EmailContent",
    "EmailNotifier",
    "cancellation_message",
    "welcome_message",
]
