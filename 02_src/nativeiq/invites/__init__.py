"""Invites module."""

from .email import IEmailSender, ResendEmailSender
from .service import MAX_BATCH_SIZE, InviteResult, InviteService

__all__ = [
    "IEmailSender",
    "ResendEmailSender",
    "InviteService",
    "InviteResult",
    "MAX_BATCH_SIZE",
]
