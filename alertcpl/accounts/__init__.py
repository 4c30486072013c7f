"""Monitored ad accounts and their agency notification destinations."""

from alertcpl.accounts.repository import AccountRepository
from alertcpl.accounts.schemas import Account, NotificationDestination

__all__ = ["Account", "AccountRepository", "NotificationDestination"]
