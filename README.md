# labrpc

A handful of small client/server services that talk over a compact
remote-procedure-call protocol on TCP, with XDR-encoded payloads. Each
service has a server command and a client command.

| Service | What it does | Server | Client | Default port |
|---|---|---|---|---|
| Calculator | adds, subtracts, multiplies or divides two numbers in single precision | `labrpc-calc-server` | `labrpc-calc HOST` | 20001 |
| Dictionary | keeps a shared list of up to 100 words of up to 50 characters: initialise, insert, delete, look up | `labrpc-dict-server` | `labrpc-dict HOST` | 20002 |
| Bakery | hands out queue numbers and serves clients in ticket order (Lamport's bakery algorithm), computing an arithmetic request for each | `labrpc-bakery-server` | `labrpc-bakery HOST` | 20003 |
| Producer/consumer | a bounded ring buffer of letters `a`..`z`; producers put, consumers take | `labrpc-pc-server` | `labrpc-pc HOST p` or `labrpc-pc HOST c` | 20004 |

## Installation

```
pip install .
```

The package needs nothing beyond the standard library. For the tests:

```
pip install ".[test]"
pytest
```

## Running a service

Start a server in one terminal:

```
labrpc-calc-server
```

and a client in another, naming the host the server runs on:

```
labrpc-calc localhost
```

Every server takes `--host` (default `0.0.0.0`) and `-p/--port`; every
client takes `-p/--port`. Server and client must agree on the port.

- **Calculator.** The client asks for an operation (`0` add, `1` sub,
  `2` mul, `3` div) and two numbers, and prints the result to three
  decimals. Division by zero gives an infinity or NaN.
- **Dictionary.** The client reads commands one at a time from standard
  input: `I` initialises the dictionary, `i WORD` inserts a word,
  `l WORD` looks one up, `d WORD` deletes it, and `q` quits. Deleting a
  word moves the last word into its place. An insert into a full
  dictionary fails.
- **Bakery.** The client starts five customers at once; each takes a
  number, waits its turn and has its request served. `--op`, `--arg1`
  and `--arg2` set the request (by default `0`, `2.0` and `3.0`); the
  server truncates the result to an integer.
- **Producer/consumer.** The client takes a role, `p` to produce letters
  or `c` to consume them, and makes a request every few seconds until a
  call fails, or until `-n/--count` requests are done. A producer waits
  while the buffer is full, a consumer while it is empty. The server's
  buffer size is set with `-s/--size` (default 4096). Run several
  producers and consumers against one server to watch them share it.

## Using the library

The services can also be used directly from Python, without a network:

```python
from labrpc.calculator import Operation, calculate
from labrpc.dictionary import WordDictionary
from labrpc.prodcons import LetterBuffer

calculate(Operation.MUL, 2.0, 3.0)   # 6.0

words = WordDictionary()
words.insert("apple")                 # 1
words.lookup("apple")                 # True
words.delete("apple")                 # True

buffer = LetterBuffer(size=2)
buffer.produce()                      # 'a'
buffer.consume()                      # 'a'
```

`labrpc.bakery.Bakery` holds the ticket numbers; `get_number` and
`serve` take and return `Ticket` records.

Each service module also offers a `create_server` function that returns
an `RpcServer`, and a client class (`CalculatorClient`,
`DictionaryClient`, `BakeryClient`, `ProdConsClient`). A server can run
in the background for the length of a `with` block:

```python
from labrpc.calculator import CalculatorClient, Operation, create_server

with create_server() as server:
    host, port = server.start()
    with CalculatorClient(host, port) as client:
        client.compute(Operation.ADD, 2, 3)   # 5.0
```

`labrpc.xdr` provides `Packer` and `Unpacker` for the XDR encoding, and
`labrpc.rpc` provides `RpcServer` and `RpcClient` for building further
services: register a handler per procedure number on the server, then
`call` that procedure from the client with an encoded payload. The server
runs each request in its own thread, so a procedure that blocks does not
hold up others. A failed call raises `RpcError`.

## What it does not do

- The services listen on TCP only, on a fixed port; there is no UDP
  transport and no port-mapper registration, so clients must be told the
  port.
- The call and reply messages are this package's own compact layout. They
  carry no credentials and cannot be exchanged with other RPC
  implementations.
- The servers keep all their state in memory; nothing is stored between
  runs.