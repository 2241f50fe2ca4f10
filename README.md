# respkv

A small in-memory key-value server that speaks the RESP wire protocol.
Clients send commands as RESP arrays of bulk strings, which is what
`redis-cli` and most RESP client libraries send.

## Commands

- `PING [message]`
- `SET key value` and `GET key`
- `HSET hash field value`, `HGET hash field` and `HGETALL hash`
- `PUBLISH channel message`, `SUBSCRIBE channel [channel ...]`,
  `UNSUBSCRIBE channel [channel ...]` and `RESET`

Command names are case-insensitive. A wrong number of arguments gets an
`ERR wrong number of arguments for '<command>' command` error. An unknown
command gets an empty simple string reply.

`SET` and `HSET` are appended to an append-only file. The server replays that
file when it starts, so data survives a restart. A background thread flushes
the file to disk once per second.

While a client has active subscriptions, it may only send `SUBSCRIBE`,
`UNSUBSCRIBE` and `RESET`; anything else gets
`ERR this command is not allowed in subscribed mode`. A subscriber that falls
behind by more than 100 queued messages and stays full for 50 ms is dropped.

## Installation

```
pip install .
```

## Running the server

```
respkv
```

Options:

- `--host` address to bind (default: all interfaces)
- `--port` port to listen on (default: 6379)
- `--aof` path of the append-only file (default: `database.aof`)

## Using it from Python

The protocol pieces can be used on their own:

```python
import io
from respkv.resp import RespReader, RespWriter, Value, ValueType

buf = io.BytesIO(b"*2\r\n$3\r\nGET\r\n$3\r\nfoo\r\n")
request = RespReader(buf).read()
print([item.bulk for item in request.array])  # ['GET', 'foo']

out = io.BytesIO()
RespWriter(out).write(Value(ValueType.STRING, text="OK"))
print(out.getvalue())  # b"+OK\r\n"
```

`RespReader.read` raises `EOFError` at the end of the stream and `ValueError`
for a malformed length.

The command handlers live on `respkv.handler.Store`; `Store.lookup` maps an
upper-case command name to its handler. The append-only file is
`respkv.aof.Aof`, usable as a context manager. The publish/subscribe broker is
`respkv.pubsub.PubSub`. To start a server from your own code, call
`respkv.server.serve(host, port, aof_path)`; `respkv.server.replay` applies a
log to a `Store`.

## What it does not do

- The reader understands only arrays and bulk strings in requests; inline
  commands are not supported.
- There is no key expiry, deletion, eviction, authentication or replication.
- Only `SET` and `HSET` are persisted; there are no snapshots and the log is
  never compacted.

## Running the tests

```
pip install .[test]
pytest
```