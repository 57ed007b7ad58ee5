import pytest
from notifications.channel import EMAIL, get_channel, set_channel
from notifications.channel.fake_email import FakeEmailAdapter


class TestFakeEmailAdapter:
    def test_send_records_email(self):
        adapter = FakeEmailAdapter()
        result = adapter.send(to="ada@example.com", subject="Hello", body="Hi", reply_to="shop@example.com")

        assert result["status"] == "sent"
        assert result["message_id"].startswith("email-")
        [sent] = adapter.sent_to("ada@example.com")
        assert sent["reply_to"] == "shop@example.com"

    def test_configured_failure(self):
        adapter = FakeEmailAdapter()
        adapter.configure(should_succeed=False, failure_reason="Mailbox full")

        result = adapter.send(to="ada@example.com", subject="Hello", body="Hi")

        assert result == {"message_id": None, "status": "failed", "error": "Mailbox full"}
        assert adapter.sent_emails == []
        assert adapter.attempts == 1

    def test_fail_next_then_recover(self):
        adapter = FakeEmailAdapter()
        adapter.fail_next(2)
        statuses = [adapter.send(to="a@example.com", subject="s", body="b")["status"] for _ in range(3)]
        assert statuses == ["failed", "failed", "sent"]

    def test_reset(self):
        adapter = FakeEmailAdapter()
        adapter.send(to="a@example.com", subject="s", body="b")
        adapter.configure(should_succeed=False)
        adapter.reset()
        assert adapter.sent_emails == []
        assert adapter.attempts == 0
        assert adapter.should_succeed is True


class TestChannelRegistry:
    def test_default_email_channel_is_a_singleton(self):
        assert isinstance(get_channel(EMAIL), FakeEmailAdapter)
        assert get_channel(EMAIL) is get_channel()

    def test_override(self):
        adapter = FakeEmailAdapter()
        set_channel(EMAIL, adapter)
        assert get_channel(EMAIL) is adapter

    def test_unknown_channel(self):
        with pytest.raises(ValueError):
            get_channel("sms")
