"""Email channel port: the only delivery channel for storefront notifications.

Order confirmations, order updates and staff alerts all arrive here as
already-rendered plain text. Adapters report failures in the result rather
than raising, and the dispatcher turns a ``failed`` status into a retry.
"""

from abc import ABC, abstractmethod


class EmailPort(ABC):
    @abstractmethod
    def send(
        self,
        to: str,
        subject: str,
        body: str,
        reply_to: str | None = None,
    ) -> dict:
        """Deliver one rendered notification to a single recipient.

        Returns:
            dict with keys: message_id, status ("sent" or "failed"), error (optional)
        """
        ...
