import asyncio

import pytest

from app.models.domain.messaging_domain import MessageContent, Recipient
from app.services.messaging.batch_dispatcher import (
    BatchDispatcher,
    InvalidMessageContent,
    format_line_messages,
)


def _recipients(count: int) -> list[Recipient]:
    return [Recipient(external_user_id=f"U{i:02d}") for i in range(count)]


def test_format_text_image_and_template():
    assert format_line_messages(MessageContent(type="text", text="hi")) == [
        {"type": "text", "text": "hi"}
    ]
    assert format_line_messages(MessageContent(type="image", image_url="https://img/x.png")) == [
        {
            "type": "image",
            "originalContentUrl": "https://img/x.png",
            "previewImageUrl": "https://img/x.png",
        }
    ]
    template = {"type": "buttons", "text": "Pick one", "actions": []}
    formatted = format_line_messages(MessageContent(type="template", template=template))
    assert formatted[0]["type"] == "template"
    assert formatted[0]["template"] == template


@pytest.mark.parametrize(
    "content",
    [
        MessageContent(type="text"),
        MessageContent(type="image"),
        MessageContent(type="template"),
        MessageContent(type="video", text="x"),
    ],
)
def test_incomplete_or_unknown_content_is_rejected(content):
    with pytest.raises(InvalidMessageContent):
        format_line_messages(content)


@pytest.mark.asyncio
async def test_invalid_content_sends_nothing(make_messaging_client):
    client = make_messaging_client()
    dispatcher = BatchDispatcher(client, window_size=5, window_pause_seconds=0)

    with pytest.raises(InvalidMessageContent):
        await dispatcher.dispatch(_recipients(3), MessageContent(type="text"))

    assert client.pushed == []


@pytest.mark.asyncio
async def test_partial_failure_is_counted_not_fatal(make_messaging_client):
    client = make_messaging_client(failing={"U03", "U07"})
    dispatcher = BatchDispatcher(client, window_size=5, window_pause_seconds=0)

    result = await dispatcher.dispatch(_recipients(12), MessageContent(type="text", text="hi"))

    assert len(client.pushed) == 12
    assert result.all_success is False
    assert result.success_count == 10
    assert sorted(result.failed_user_ids) == ["U03", "U07"]
    assert result.error == "2 users failed"


@pytest.mark.asyncio
async def test_unexpected_exception_is_isolated(make_messaging_client):
    client = make_messaging_client(raising={"U01"})
    dispatcher = BatchDispatcher(client, window_size=5, window_pause_seconds=0)

    result = await dispatcher.dispatch(_recipients(4), MessageContent(type="text", text="hi"))

    assert result.success_count == 3
    assert result.failed_user_ids == ["U01"]


@pytest.mark.asyncio
async def test_windows_bound_concurrency_and_pause_between(monkeypatch, make_messaging_client):
    pauses = []
    real_sleep = asyncio.sleep

    async def recording_sleep(delay, *args, **kwargs):
        if delay:
            pauses.append(delay)
        await real_sleep(0)

    monkeypatch.setattr("app.services.messaging.batch_dispatcher.asyncio.sleep", recording_sleep)
    client = make_messaging_client()
    dispatcher = BatchDispatcher(client, window_size=5, window_pause_seconds=0.1)

    result = await dispatcher.dispatch(_recipients(12), MessageContent(type="text", text="hi"))

    assert result.all_success is True
    assert result.error is None
    assert client.max_in_flight <= 5
    assert pauses == [0.1, 0.1]


@pytest.mark.asyncio
async def test_empty_recipient_list(make_messaging_client):
    dispatcher = BatchDispatcher(make_messaging_client(), window_size=5, window_pause_seconds=0)

    result = await dispatcher.dispatch([], MessageContent(type="text", text="hi"))

    assert result.all_success is True
    assert result.success_count == 0
