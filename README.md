# busferry

Building blocks for talking to and observing a D-Bus message bus. The package
has no dependencies outside the standard library.

- **`busferry.connectaddress`** parses and formats bus address strings such as
  `unix:path=...`, `unix:abstract=...`, `unix:dir=...`, `unix:tmpdir=...`,
  `unix:runtime=yes` and `tcp:host=...,port=...[,family=ipv4|ipv6]`. It checks
  for duplicate or contradictory keys.
  `ConnectAddress.for_standard_bus(StandardBus.SESSION)` finds the session bus
  in two ways. It first reads `DBUS_SESSION_BUS_ADDRESS`. If that is not set,
  it reads the session info file under `~/.dbus/session-bus/`.
  `StandardBus.SYSTEM` gives `/var/run/dbus/system_bus_socket` on Unix.
  `session_bus_address()` returns the raw session address string.
- **`busferry.authclient`**: `AuthClient` runs the client side of the
  line-based authentication handshake over a transport you supply. It first
  tries `EXTERNAL`, using the effective user id on Unix. If that is rejected,
  it tries `ANONYMOUS`. It can negotiate Unix file descriptor passing and then
  sends `BEGIN`. `hex_encode()` turns text or bytes into lowercase hex.
- **`busferry.introspection`**: `IntrospectionTree.merge_xml()` merges
  introspection XML documents into a tree of `IntrospectionNode`s. The nodes
  hold `Interface`s with their `Method`s (calls and signals), `Argument`s and
  `Property`s. `is_object_path_valid()` checks an object path.
- **`busferry.eavesdroppermodel`**: `EavesdropperModel` is a table of captured
  messages.
  - Each call is matched with its reply by serial and endpoint.
  - It reports round-trip times in milliseconds.
  - It shows friendlier sender and destination names.
  - It can save the table to a dump file and load one back.
- **`busferry.messagesortfilter`**: `MessageSortFilter` selects rows of such a
  table. You can filter by a case-insensitive text match. You can also keep
  only calls without an answer and errors. Rows can be grouped by conversation
  start time.
- **`busferry.pendingreply`**: `PendingReply` tracks the reply to a sent
  message. It finishes with the reply, with an `ErrorCode`, or by timing out.
  `MessageReceiver` is the base class for handlers of incoming messages.

## Installation

```
pip install .
```

## Examples

Parse and format an address:

```python
from busferry.connectaddress import AddressType, parse_address

addr = parse_address("tcp:host=localhost,family=ipv4,port=4711,guid=0123abcd")
assert addr.type is AddressType.TCP4
assert addr.port == 4711
print(addr.to_string())
# tcp:host=localhost,family=ipv4,port=4711,guid=0123abcd
```

If an address string is malformed, `parse_address` raises `AddressError`.

Build an introspection tree:

```python
from busferry.introspection import IntrospectionTree

tree = IntrospectionTree()
tree.merge_xml(
    '<node name="/org/example/thing">'
    '<interface name="org.example.Thing">'
    '<method name="Ping"><arg type="s" direction="out"/></method>'
    '<property name="Volume" type="u" access="readwrite"/>'
    '</interface></node>',
    "",
)
thing = tree.root_node.children["org"].children["example"].children["thing"]
print(thing.path())  # /org/example/thing
```

`merge_xml` raises `IntrospectionError` in these cases:

- the document is invalid;
- its path does not match the path given;
- a node already exists at that path.

## What the package does not do

The package does not open sockets, run an event loop or connect to a bus.

- **Authentication.** `AuthClient` works on any object that has `read(size)`,
  `write(data)`, `is_open` and `supported_passing_unix_fds_count`. You supply
  that object.
- **Messages.** The package does not serialize or parse the bus message format
  itself. `EavesdropperModel` takes any message objects with the expected
  attributes and a `save()` method. `load_from_file()` needs a `deserialize`
  function that turns the stored bytes back into messages.
- **No program.** There is no command-line program and no graphical
  interface.

## Running the tests

```
pip install .[test]
pytest
```