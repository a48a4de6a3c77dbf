"""Unit tests for event notifiers"""

from unittest.mock import MagicMock, patch

import httpx

from groupbuy_gateway.infrastructure.notifications.notifier import (
    BROADCAST_CHANNEL,
    LoggingNotifier,
    WebhookNotifier,
)


@patch("groupbuy_gateway.infrastructure.notifications.notifier.httpx.post")
def test_webhook_posts_event(mock_post: MagicMock):
    notifier = WebhookNotifier(webhook_url="http://realtime.local/events", timeout=1.0)

    notifier.notify_channel("group-1", "member_joined", {"buyer_name": "Asha"})

    mock_post.assert_called_once()
    url = mock_post.call_args.args[0]
    body = mock_post.call_args.kwargs["json"]
    assert url == "http://realtime.local/events"
    assert body["channel"] == "group-1"
    assert body["event"] == "member_joined"
    assert body["payload"] == {"buyer_name": "Asha"}
    assert "timestamp" in body
    assert mock_post.call_args.kwargs["timeout"] == 1.0


@patch("groupbuy_gateway.infrastructure.notifications.notifier.httpx.post")
def test_webhook_broadcast_uses_broadcast_channel(mock_post: MagicMock):
    WebhookNotifier(webhook_url="http://realtime.local/events").broadcast("group_ready_for_bids", {})

    assert mock_post.call_args.kwargs["json"]["channel"] == BROADCAST_CHANNEL


@patch("groupbuy_gateway.infrastructure.notifications.notifier.httpx.post")
def test_webhook_failure_is_swallowed(mock_post: MagicMock):
    mock_post.side_effect = httpx.ConnectError("connection refused")
    notifier = WebhookNotifier(webhook_url="http://realtime.local/events")

    # At-most-once: no retry, no exception
    notifier.notify_channel("group-1", "bid_accepted", {})

    assert mock_post.call_count == 1


def test_logging_notifier_logs(caplog):
    with caplog.at_level("INFO"):
        LoggingNotifier().broadcast("new_group_formed", {"name": "Dadar"})

    assert any(record.event == "new_group_formed" for record in caplog.records)
