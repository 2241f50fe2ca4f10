"""TCP server that speaks RESP, logs writes to an AOF and replays it."""

from __future__ import annotations

import argparse
import logging
import socket
import sys
import threading

from respkv.aof import Aof
from respkv.handler import Store
from respkv.pubsub import ClientState, PubSub, new_client_state
from respkv.resp import RespReader, RespWriter, Value, ValueType

logger = logging.getLogger(__name__)

_LOGGED_COMMANDS = frozenset({"SET", "HSET"})


class _SocketStream:
    """Minimal binary stream that sends everything it is given."""

    def __init__(self, conn: socket.socket) -> None:
        self._conn = conn

    def write(self, data: bytes) -> int:
        self._conn.sendall(data)
        return len(data)


def _dispatch(
    value: Value,
    aof: Aof,
    client: ClientState,
    pubsub: PubSub,
    store: Store,
    writer: RespWriter,
) -> None:
    if value.type is not ValueType.ARRAY:
        logger.info("Invalid request, expected array")
        return
    if not value.array:
        logger.info("Invalid request, expected array length > 0")
        return

    command = value.array[0].bulk.upper()
    args = value.array[1:]

    handler = store.lookup(command)
    if handler is None:
        if not pubsub.validate_command(command, client, writer):
            return
        pubsub_handler = pubsub.handlers().get(command)
        if pubsub_handler is None:
            logger.info("Invalid command: %s", command)
            writer.write(Value(ValueType.STRING, text=""))
            return
        pubsub_handler(args, client, writer)
        return

    if command in _LOGGED_COMMANDS:
        aof.write(value)
    writer.write(handler(args))


def handle_connection(
    conn: socket.socket,
    aof: Aof,
    client: ClientState,
    pubsub: PubSub,
    store: Store,
) -> None:
    """Serve one client until it disconnects or sends a malformed request."""
    writer = RespWriter(_SocketStream(conn))
    with conn, conn.makefile("rb") as stream:
        reader = RespReader(stream)
        try:
            while True:
                try:
                    value = reader.read()
                except (EOFError, ValueError) as exc:
                    logger.info("Closing connection: %s", exc)
                    return
                _dispatch(value, aof, client, pubsub, store, writer)
        except OSError as exc:
            logger.info("Connection error: %s", exc)


def replay(aof: Aof, store: Store) -> int:
    """Apply every logged command to the store; return how many were applied."""
    applied = 0
    for value in aof.read():
        if not value.array:
            logger.warning("Skipping malformed log entry")
            continue
        command = value.array[0].bulk.upper()
        handler = store.lookup(command)
        if handler is None:
            logger.warning("Invalid command: %s", command)
            continue
        handler(value.array[1:])
        applied += 1
    return applied


def serve(host: str = "", port: int = 6379, aof_path: str = "database.aof") -> None:
    """Listen for clients forever, after restoring state from the log."""
    pubsub = PubSub()
    store = Store()
    print(f"Listening on port :{port}", flush=True)
    with socket.create_server((host, port)) as listener, Aof(aof_path) as aof:
        replay(aof, store)
        while True:
            conn, _ = listener.accept()
            threading.Thread(
                target=handle_connection,
                args=(conn, aof, new_client_state(), pubsub, store),
                daemon=True,
            ).start()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="respkv", description="A small RESP key/value server."
    )
    parser.add_argument("--host", default="", help="address to bind")
    parser.add_argument("--port", type=int, default=6379, help="port to listen on")
    parser.add_argument("--aof", default="database.aof", help="append-only file path")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    try:
        serve(args.host, args.port, args.aof)
    except KeyboardInterrupt:
        return 0
    except OSError as exc:
        print(exc, file=sys.stderr)
        return 1
    return 0