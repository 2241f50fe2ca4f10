import io
import time

import pytest

from respkv.pubsub import (
    ALLOWED_SUBSCRIBED_MODE_COMMANDS,
    ClientState,
    PubSub,
    Subscriber,
    new_client_state,
)
from respkv.resp import RespWriter, Value, ValueType


def bulk(text):
    return Value(ValueType.BULK, bulk=text)


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def output():
    buffer = io.BytesIO()
    return buffer, RespWriter(buffer)


def confirmation(kind, channel, count):
    return Value(
        ValueType.ARRAY,
        array=[bulk(kind), bulk(channel), Value(ValueType.INTEGER, num=count)],
    ).marshal()


def test_publish_without_subscribers_returns_zero(output):
    buffer, writer = output
    PubSub().publish([bulk("news"), bulk("hi")], new_client_state(), writer)
    assert buffer.getvalue() == b":0\r\n"


def test_publish_wrong_arguments(output):
    buffer, writer = output
    PubSub().publish([bulk("news")], new_client_state(), writer)
    expected = Value(
        ValueType.ERROR, text="ERR wrong number of arguments for 'publish' command"
    ).marshal()
    assert buffer.getvalue() == expected


def test_subscribe_confirms_each_channel(output):
    buffer, writer = output
    client = new_client_state()
    PubSub().subscribe([bulk("news"), bulk("sport")], client, writer)
    assert client.is_subscribed
    assert buffer.getvalue() == (
        b"*3\r\n$9\r\nsubscribe\r\n$4\r\nnews\r\n:1\r\n"
        + confirmation("subscribe", "sport", 2)
    )


def test_subscribe_without_arguments(output):
    buffer, writer = output
    client = new_client_state()
    PubSub().subscribe([], client, writer)
    assert buffer.getvalue() == Value(
        ValueType.ERROR, text="ERR wrong number of arguments for 'subscribe' command"
    ).marshal()
    assert not client.is_subscribed


def test_published_message_reaches_subscriber(output):
    buffer, writer = output
    pubsub = PubSub()
    subscriber_client = new_client_state()
    pubsub.subscribe([bulk("news")], subscriber_client, writer)

    pub_buffer = io.BytesIO()
    pubsub.publish([bulk("news"), bulk("hello")], new_client_state(), RespWriter(pub_buffer))
    assert pub_buffer.getvalue() == Value(ValueType.INTEGER, num=1).marshal()

    message = Value(
        ValueType.ARRAY, array=[bulk("message"), bulk("news"), bulk("hello")]
    ).marshal()
    assert wait_for(lambda: buffer.getvalue().endswith(message))


def test_publish_counts_every_subscriber():
    pubsub = PubSub()
    for _ in range(2):
        pubsub.subscribe([bulk("news")], new_client_state(), RespWriter(io.BytesIO()))
    pub_buffer = io.BytesIO()
    pubsub.publish([bulk("news"), bulk("x")], new_client_state(), RespWriter(pub_buffer))
    assert pub_buffer.getvalue() == Value(ValueType.INTEGER, num=2).marshal()


def test_unsubscribe_removes_channel(output):
    buffer, writer = output
    pubsub = PubSub()
    client = new_client_state()
    pubsub.subscribe([bulk("news")], client, writer)
    before = len(buffer.getvalue())
    pubsub.unsubscribe([bulk("news")], client, writer)
    assert buffer.getvalue()[before:] == confirmation("unsubscribe", "news", 0)
    assert not client.is_subscribed

    pub_buffer = io.BytesIO()
    pubsub.publish([bulk("news"), bulk("x")], new_client_state(), RespWriter(pub_buffer))
    assert pub_buffer.getvalue() == Value(ValueType.INTEGER, num=0).marshal()


def test_unsubscribe_keeps_other_channels(output):
    buffer, writer = output
    pubsub = PubSub()
    client = new_client_state()
    pubsub.subscribe([bulk("news"), bulk("sport")], client, writer)
    before = len(buffer.getvalue())
    pubsub.unsubscribe([bulk("news"), bulk("unknown")], client, writer)
    assert buffer.getvalue()[before:] == confirmation("unsubscribe", "news", 1)
    assert client.is_subscribed


def test_unsubscribe_for_client_without_channels_writes_nothing(output):
    buffer, writer = output
    PubSub().unsubscribe([bulk("news")], new_client_state(), writer)
    assert buffer.getvalue() == b""


def test_unsubscribe_without_arguments(output):
    buffer, writer = output
    PubSub().unsubscribe([], new_client_state(), writer)
    assert buffer.getvalue() == Value(
        ValueType.ERROR, text="ERR wrong number of arguments for 'unsubscribe' command"
    ).marshal()


def test_reset_unsubscribes_everything(output):
    buffer, writer = output
    pubsub = PubSub()
    client = new_client_state()
    pubsub.subscribe([bulk("news"), bulk("sport")], client, writer)
    before = len(buffer.getvalue())
    pubsub.reset([], client, writer)
    assert buffer.getvalue()[before:] == (
        confirmation("unsubscribe", "news", 1)
        + confirmation("unsubscribe", "sport", 0)
        + b"+RESET\r\n"
    )
    assert not client.is_subscribed


def test_reset_when_not_subscribed(output):
    buffer, writer = output
    PubSub().reset([], new_client_state(), writer)
    assert buffer.getvalue() == Value(ValueType.STRING, text="RESET").marshal()


def test_reset_with_arguments(output):
    buffer, writer = output
    PubSub().reset([bulk("x")], new_client_state(), writer)
    assert buffer.getvalue() == Value(
        ValueType.ERROR, text="ERR wrong number of arguments for 'reset' command"
    ).marshal()


def test_validate_command_when_not_subscribed(output):
    buffer, writer = output
    assert PubSub().validate_command("PUBLISH", ClientState("a"), writer) is True
    assert buffer.getvalue() == b""


def test_validate_command_rejects_in_subscribed_mode(output):
    buffer, writer = output
    client = ClientState("a", is_subscribed=True)
    assert PubSub().validate_command("PUBLISH", client, writer) is False
    assert buffer.getvalue() == Value(
        ValueType.ERROR, text="ERR this command is not allowed in subscribed mode"
    ).marshal()


@pytest.mark.parametrize("command", sorted(ALLOWED_SUBSCRIBED_MODE_COMMANDS) + ["subscribe"])
def test_validate_command_allows_subscription_commands(output, command):
    buffer, writer = output
    client = ClientState("a", is_subscribed=True)
    assert PubSub().validate_command(command, client, writer) is True
    assert buffer.getvalue() == b""


def test_handlers_cover_pubsub_commands():
    assert set(PubSub().handlers()) == {"PUBLISH", "SUBSCRIBE", "UNSUBSCRIBE", "RESET"}


def test_new_client_state_ids_increase():
    first = new_client_state()
    second = new_client_state()
    assert int(second.id) > int(first.id)
    assert not first.is_subscribed


def test_subscriber_drains_after_close():
    subscriber = Subscriber("1")
    assert subscriber.deliver("a")
    assert subscriber.deliver("b")
    subscriber.close()
    assert list(subscriber) == ["a", "b"]


def test_subscriber_rejects_after_close():
    subscriber = Subscriber("1")
    subscriber.close()
    subscriber.close()
    assert subscriber.deliver("a") is False
    assert list(subscriber) == []


def test_slow_subscriber_is_closed():
    subscriber = Subscriber("1", capacity=1)
    assert subscriber.deliver("a")
    assert subscriber.deliver("b") is False
    assert subscriber.closed
    assert list(subscriber) == ["a"]