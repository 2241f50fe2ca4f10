"""In-memory key/value and hash store with the command handlers."""

from __future__ import annotations

import threading
from typing import Callable

from respkv.resp import Value, ValueType

Handler = Callable[[list[Value]], Value]


def _wrong_args(name: str) -> Value:
    return Value(
        ValueType.ERROR,
        text=f"ERR wrong number of arguments for '{name}' command",
    )


class Store:
    """Holds string keys and hashes and answers data commands."""

    def __init__(self) -> None:
        self._strings: dict[str, str] = {}
        self._strings_lock = threading.Lock()
        self._hashes: dict[str, dict[str, str]] = {}
        self._hashes_lock = threading.Lock()
        self._handlers: dict[str, Handler] = {
            "PING": self.ping,
            "SET": self.set,
            "GET": self.get,
            "HSET": self.hset,
            "HGET": self.hget,
            "HGETALL": self.hgetall,
        }

    def ping(self, args: list[Value]) -> Value:
        if not args:
            return Value(ValueType.STRING, text="PONG")
        return Value(ValueType.STRING, text=args[0].bulk)

    def set(self, args: list[Value]) -> Value:
        if len(args) != 2:
            return _wrong_args("set")
        with self._strings_lock:
            self._strings[args[0].bulk] = args[1].bulk
        return Value(ValueType.STRING, text="OK")

    def get(self, args: list[Value]) -> Value:
        if len(args) != 1:
            return _wrong_args("get")
        with self._strings_lock:
            value = self._strings.get(args[0].bulk)
        if value is None:
            return Value(ValueType.NULL)
        return Value(ValueType.BULK, bulk=value)

    def hset(self, args: list[Value]) -> Value:
        if len(args) != 3:
            return _wrong_args("hset")
        name, key, value = (arg.bulk for arg in args)
        with self._hashes_lock:
            self._hashes.setdefault(name, {})[key] = value
        return Value(ValueType.STRING, text="OK")

    def hget(self, args: list[Value]) -> Value:
        if len(args) != 2:
            return _wrong_args("hget")
        with self._hashes_lock:
            value = self._hashes.get(args[0].bulk, {}).get(args[1].bulk)
        if value is None:
            return Value(ValueType.NULL)
        return Value(ValueType.STRING, text=value)

    def hgetall(self, args: list[Value]) -> Value:
        if len(args) != 1:
            return _wrong_args("hgetall")
        with self._hashes_lock:
            items = list(self._hashes.get(args[0].bulk, {}).items())
        response = Value(ValueType.ARRAY)
        for key, value in items:
            response.array.append(Value(ValueType.BULK, bulk=key))
            response.array.append(Value(ValueType.BULK, bulk=value))
        return response

    def lookup(self, command: str) -> Handler | None:
        """Return the handler for an upper-case command name, or None."""
        return self._handlers.get(command)