"""In-memory email adapter that records outgoing mail."""

import threading
from uuid import uuid4

from notifications.channel.email_port import EmailPort


class FakeEmailAdapter(EmailPort):
    def __init__(self):
        self._lock = threading.Lock()
        self.sent_emails: list[dict] = []
        self.attempts = 0
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"
        self._failures_remaining = 0

    def configure(self, should_succeed: bool = True, failure_reason: str = "Email delivery failed"):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def fail_next(self, times: int = 1) -> None:
        """Fail the next ``times`` sends, then go back to the configured behaviour."""
        self._failures_remaining = times

    def send(
        self,
        to: str,
        subject: str,
        body: str,
        reply_to: str | None = None,
    ) -> dict:
        with self._lock:
            self.attempts += 1
            if self._failures_remaining > 0:
                self._failures_remaining -= 1
                return {"message_id": None, "status": "failed", "error": self.failure_reason}
            if not self.should_succeed:
                return {"message_id": None, "status": "failed", "error": self.failure_reason}

            message_id = f"email-{uuid4().hex[:12]}"
            self.sent_emails.append(
                {
                    "message_id": message_id,
                    "to": to,
                    "subject": subject,
                    "body": body,
                    "reply_to": reply_to,
                }
            )

        return {"message_id": message_id, "status": "sent"}

    def sent_to(self, address: str) -> list[dict]:
        return [email for email in self.sent_emails if email["to"] == address]

    def reset(self):
        with self._lock:
            self.sent_emails.clear()
            self.attempts = 0
            self.should_succeed = True
            self.failure_reason = "Email delivery failed"
            self._failures_remaining = 0
