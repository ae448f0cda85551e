"""Notification transport interface"""
from abc import ABC, abstractmethod


class EmailSender(ABC):
    """Delivery side channel for outgoing email"""

    @abstractmethod
    async def send(self, address: str, subject: str, content: str) -> bool:
        """Send an email; return True when delivered, False when it failed"""
        pass
