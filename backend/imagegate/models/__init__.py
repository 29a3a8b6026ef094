"""Database models."""
from imagegate.models.user import User
from imagegate.models.transaction import Operation, Transaction

__all__ = ["User", "Transaction", "Operation"]
