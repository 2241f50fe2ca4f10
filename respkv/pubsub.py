"""Publish/subscribe channels and per-client subscription state."""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Iterator

from respkv.resp import RespWriter, Value, ValueType

logger = logging.getLogger(__name__)

CHANNEL_BUFFER_SIZE = 100
SLOW_SUBSCRIBER_TIMEOUT = 0.05
ALLOWED_SUBSCRIBED_MODE_COMMANDS = frozenset({"UNSUBSCRIBE", "SUBSCRIBE", "RESET"})

PubSubHandler = Callable[[list[Value], "ClientState", RespWriter], None]

_client_ids = itertools.count(1)
_client_ids_lock = threading.Lock()


@dataclass
class ClientState:
    """Per-connection state: an identifier and whether it is subscribed."""

    id: str
    is_subscribed: bool = False


def new_client_state() -> ClientState:
    """Create the state for a new client with a fresh, increasing id."""
    with _client_ids_lock:
        return ClientState(str(next(_client_ids)))


class Subscriber:
    """A bounded message queue for one client on one channel.

    Iterating yields queued messages until the subscriber is closed and
    the queue has drained.
    """

    def __init__(self, subscriber_id: str, capacity: int = CHANNEL_BUFFER_SIZE) -> None:
        self.id = subscriber_id
        self._capacity = capacity
        self._messages: deque[str] = deque()
        self._cond = threading.Condition()
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def close(self) -> None:
        """Close the subscriber; closing twice has no further effect."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def deliver(self, message: str) -> bool:
        """Queue a message, waiting briefly if the queue is full.

        A subscriber that stays full past the timeout is closed. Returns
        whether the message was queued.
        """
        with self._cond:
            has_room = self._cond.wait_for(
                lambda: self._closed or len(self._messages) < self._capacity,
                SLOW_SUBSCRIBER_TIMEOUT,
            )
            if not has_room:
                self._closed = True
                self._cond.notify_all()
                return False
            if self._closed:
                return False
            self._messages.append(message)
            self._cond.notify_all()
            return True

    def __iter__(self) -> Iterator[str]:
        while True:
            with self._cond:
                self._cond.wait_for(lambda: self._messages or self._closed)
                if not self._messages:
                    return
                message = self._messages.popleft()
                self._cond.notify_all()
            yield message


def _error(text: str) -> Value:
    return Value(ValueType.ERROR, text=text)


def _bulk(text: str) -> Value:
    return Value(ValueType.BULK, bulk=text)


def _publish_to_subscribers(message: str, subscribers: list[Subscriber]) -> None:
    for subscriber in subscribers:
        subscriber.deliver(message)


def _write_channel_messages(subscriber: Subscriber, channel: str, writer: RespWriter) -> None:
    for message in subscriber:
        reply = Value(
            ValueType.ARRAY,
            array=[_bulk("message"), _bulk(channel), _bulk(message)],
        )
        try:
            writer.write(reply)
        except OSError as exc:
            logger.debug("Could not deliver message on %s: %s", channel, exc)


class PubSub:
    """Channels, their subscribers, and the channels of each client."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._open_channels: dict[str, list[Subscriber]] = {}
        self._channels_by_client: dict[str, list[str]] = {}

    def publish(self, args: list[Value], client: ClientState, writer: RespWriter) -> None:
        if len(args) != 2:
            writer.write(_error("ERR wrong number of arguments for 'publish' command"))
            return
        with self._lock:
            subscribers = self._open_channels.get(args[0].bulk)
            if subscribers is None:
                writer.write(Value(ValueType.INTEGER, num=0))
                return
            targets = list(subscribers)
            threading.Thread(
                target=_publish_to_subscribers,
                args=(args[1].bulk, targets),
                daemon=True,
            ).start()
            writer.write(Value(ValueType.INTEGER, num=len(targets)))

    def subscribe(self, args: list[Value], client: ClientState, writer: RespWriter) -> None:
        if not args:
            writer.write(_error("ERR wrong number of arguments for 'subscribe' command"))
            return
        started: list[tuple[Subscriber, str]] = []
        with self._lock:
            channels = self._channels_by_client.setdefault(client.id, [])
            client.is_subscribed = True
            for arg in args:
                name = arg.bulk
                subscriber = Subscriber(client.id)
                self._open_channels.setdefault(name, []).append(subscriber)
                if name not in channels:
                    channels.append(name)
                writer.write(
                    Value(
                        ValueType.ARRAY,
                        array=[
                            _bulk("subscribe"),
                            _bulk(name),
                            Value(ValueType.INTEGER, num=len(channels)),
                        ],
                    )
                )
                started.append((subscriber, name))
        for subscriber, name in started:
            threading.Thread(
                target=_write_channel_messages,
                args=(subscriber, name, writer),
                daemon=True,
            ).start()

    def unsubscribe(self, args: list[Value], client: ClientState, writer: RespWriter) -> None:
        if not args:
            writer.write(_error("ERR wrong number of arguments for 'unsubscribe' command"))
            return
        with self._lock:
            channels = self._channels_by_client.get(client.id)
            if channels is None:
                return
            for arg in args:
                name = arg.bulk
                if name not in channels:
                    continue
                channels.remove(name)
                subscribers = self._open_channels.get(name)
                if subscribers is not None:
                    own = next((s for s in subscribers if s.id == client.id), None)
                    if own is not None:
                        own.close()
                        subscribers.remove(own)
                        if not subscribers:
                            del self._open_channels[name]
                writer.write(
                    Value(
                        ValueType.ARRAY,
                        array=[
                            _bulk("unsubscribe"),
                            _bulk(name),
                            Value(ValueType.INTEGER, num=len(channels)),
                        ],
                    )
                )
            client.is_subscribed = bool(channels)
            if not channels:
                del self._channels_by_client[client.id]

    def reset(self, args: list[Value], client: ClientState, writer: RespWriter) -> None:
        if args:
            writer.write(_error("ERR wrong number of arguments for 'reset' command"))
            return
        if client.is_subscribed:
            with self._lock:
                channels = list(self._channels_by_client.get(client.id, []))
            if channels:
                self.unsubscribe(
                    [Value(ValueType.STRING, bulk=name) for name in channels],
                    client,
                    writer,
                )
        writer.write(Value(ValueType.STRING, text="RESET"))

    def validate_command(self, command: str, client: ClientState, writer: RespWriter) -> bool:
        """Check that a subscribed client only issues allowed commands."""
        if not client.is_subscribed:
            return True
        if command.upper() not in ALLOWED_SUBSCRIBED_MODE_COMMANDS:
            writer.write(_error("ERR this command is not allowed in subscribed mode"))
            return False
        return True

    def handlers(self) -> dict[str, PubSubHandler]:
        """Map upper-case command names to their pub/sub handlers."""
        return {
            "PUBLISH": self.publish,
            "SUBSCRIBE": self.subscribe,
            "UNSUBSCRIBE": self.unsubscribe,
            "RESET": self.reset,
        }