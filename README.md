# ktpsock

`ktpsock` provides KTP, a small reliable message transport on top of UDP.
Applications use a socket-style API: `ktp_socket`, and the `KTPSocket`
methods `bind`, `sendto`, `recvfrom` and `close`. A background `KTPDaemon`
does the actual work. It binds the UDP sockets, sends queued messages within
a sliding window, retransmits packets that are not acknowledged in time,
acknowledges incoming data, and delivers in-order data to each socket's
receive buffer.

## Concepts

- **Messages** are at most 512 bytes and are handled like C strings. A
  message ends at its first NUL byte, and anything past 512 bytes is cut off.
  Each message travels in a 516-byte packet with a 4-byte header. The header
  holds the sequence number, the acknowledgement number, the ACK flag and the
  advertised receive window, one unsigned byte each. The header is handled by
  `ktpsock.packet.Header`, `create_packet`, `extract_packet` and
  `format_header`.
- **Sequence numbers** run from 1 to 225 and then wrap around.
- **Buffers**: each socket has a send buffer and a receive buffer. Each is a
  `ktpsock.buffer.MessageBuffer` holding up to 10 messages. A full send buffer
  makes `sendto` raise `KTPError`, and the caller retries later.
- **Windows**: `ktpsock.window.SendWindow` tracks outstanding packets, their
  send times and the peer's advertised free space. It takes cumulative ACKs.
  `ktpsock.window.ReceiveWindow` accepts packets inside its window, sets
  out-of-order ones aside, and releases them in order.
- **Socket table**: a `ktpsock.table.SocketTable` holds a fixed number of
  `SocketEntry` slots, 10 by default, behind one lock. `ktp_socket` claims a
  free slot. A slot goes back to the table on `close`. It also goes back when
  the daemon finds that the process that owns it no longer exists.
- **Errors** are raised as `ktpsock.errors.KTPError`, which carries an
  `ErrorCode` in its `code` attribute. `error_message(code)` gives the
  readable text for a code.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Using the library

```python
import socket

from ktpsock.table import SocketTable
from ktpsock.daemon import KTPDaemon
from ktpsock.api import ktp_socket

table = SocketTable(10)

with KTPDaemon(table, 0.0, 5):
    sender = ktp_socket(table, socket.AF_INET, 12345, 0)
    sender.bind("127.0.0.1", 5000, "127.0.0.1", 6000)

    receiver = ktp_socket(table, socket.AF_INET, 12345, 0)
    receiver.bind("127.0.0.1", 6000, "127.0.0.1", 5000)

    sender.sendto("hello", ("127.0.0.1", 6000))
    print(receiver.recvfrom(10))   # b'hello'

    sender.close()
    receiver.close()
```

Observe these rules when you use the API:

- The socket type must be the KTP type, `12345` (`ktpsock.api.SOCK_KTP`).
  The address family must be `AF_INET`. Any other value for either raises
  `KTPError`.
- `bind` only records the addresses. The daemon binds the UDP socket
  shortly afterwards.
- `sendto` only accepts the destination the socket was bound to. It returns
  the length of the queued message.
- `recvfrom(timeout)` waits for the next in-order message and returns it as
  `bytes`. With no timeout it waits for ever. When the timeout runs out it
  raises `KTPError` with `ErrorCode.NO_MESSAGE`.
- `KTPSocket` is a context manager, and leaving the `with` block closes it.
  Closing twice does nothing.

`KTPDaemon(table, drop_probability, timeout)` has two tuning arguments:

- `drop_probability` is the chance of discarding each incoming packet. Set
  it above zero to test how the protocol recovers from packet loss.
- `timeout` is the retransmission timeout in seconds. The send pass runs
  every `timeout / 2` seconds.

The daemon is also a context manager: `start` opens the UDP sockets and
starts its worker threads, and `stop` ends them and closes the sockets. For
step-by-step use and testing, a single pass of each worker can be run by
hand:

- `service_once()`
- `receive_once(wait)`
- `send_once(now)`
- `handle_packet(index, packet)`

## Command-line tools

Installing the package adds three commands. Each one lists its arguments with
`--help`.

- `ktpsock-daemon [--drop-probability P] [--timeout SECONDS] [--sockets N] [--verbose]`
  runs a daemon over a fresh socket table in the foreground until Ctrl-C.
  Ctrl-C closes every socket.
- `ktpsock-transfer {send,receive} LOCAL_IP LOCAL_PORT REMOTE_IP REMOTE_PORT FILENAME`
  transfers one file. It accepts `--drop-probability` and `--timeout`.
  - In `send` mode it reads the file in 512-byte chunks and zero-pads the
    last one. It queues each chunk, retrying while the send buffer is full,
    then sends the end-of-file marker `###EOF###`. It waits until everything
    has been acknowledged before it exits.
  - In `receive` mode it writes every message it receives to the file until
    the marker arrives.
- `ktpsock-demo PROGRAM` runs a demonstration peer. It accepts `--count N`,
  `--drop-probability` and `--timeout`. The programs come in pairs on
  127.0.0.1:
  - `user1` sends to `user2` (port 5000 to 6000). `user1` pauses 5 seconds
    after every third message.
  - `user3` sends to `user4` (port 7000 to 8000).
  - `user5` sends to `user6` (port 9000 to 10000).
  - `usera` sends to `userb` (port 5000 to 6000). `usera` sends 30 messages
    of the form `Message 1: Extra message 1`, retrying while the send buffer
    is full, and waits until they are all acknowledged.

  Senders send messages such as `User1 Message 1`, `User1 Message 2`, and
  so on. Receivers print every message they get. Senders and receivers run
  until interrupted, unless `--count` is given.

A sender and its receiver are started as two separate commands. The receiver
should be started first.

## What the package does not do

- The socket table lives inside one Python process. Sockets are shared only
  between threads of that process, not between processes. For that reason
  `ktpsock-transfer` and `ktpsock-demo` each start their own daemon over
  their own table. `ktpsock-daemon` on its own is useful only for watching
  the daemon start and stop, because no other program can open sockets in
  its table.
- Messages are cut at the first NUL byte. Files containing NUL bytes are
  therefore not carried faithfully. This includes the zero padding of the
  last chunk, which is dropped on the receiving side, so the transfer is
  meant for text files.