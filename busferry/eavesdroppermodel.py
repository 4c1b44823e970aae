"""Recording of observed bus messages, pairing calls with their replies."""

from __future__ import annotations

import os
import struct
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Optional, Protocol, Union

__all__ = [
    "FILE_HEADER",
    "MessageType",
    "Column",
    "MessageRecord",
    "EavesdropperModel",
]

FILE_HEADER = b"Dferry binary DBus dump v0001"

# Per record: index of the paired message, timestamp, length of the message data.
_RECORD_HEADER = struct.Struct(">iqI")

_NANOSECONDS_PER_MILLISECOND = 1_000_000.0


class MessageType(IntEnum):
    INVALID = 0
    METHOD_CALL = 1
    METHOD_RETURN = 2
    ERROR = 3
    SIGNAL = 4


class Column(IntEnum):
    TYPE = 0
    ROUNDTRIP_TIME = 1
    METHOD = 2
    INTERFACE = 3
    PATH = 4
    SENDER = 5
    DESTINATION = 6


_TYPE_NAMES = {
    MessageType.METHOD_CALL: "Call",
    MessageType.METHOD_RETURN: "Return",
    MessageType.ERROR: "Error",
    MessageType.SIGNAL: "Signal",
    MessageType.INVALID: "???",
}

_HEADERS = {
    Column.TYPE: "Type",
    Column.ROUNDTRIP_TIME: "Latency [ms]",
    Column.METHOD: "Method",
    Column.INTERFACE: "Interface",
    Column.PATH: "Path",
    Column.SENDER: "Sender",
    Column.DESTINATION: "Destination",
}

_REPLY_TYPES = (MessageType.METHOD_RETURN, MessageType.ERROR)


class _BusMessage(Protocol):
    type: int
    serial: int
    reply_serial: int
    expects_reply: bool
    method: str
    interface: str
    path: str
    sender: str
    destination: str

    def save(self) -> bytes:
        """Serialize the message as it appears on the bus."""


def _is_numeric_address(address: str) -> bool:
    return address.startswith(":")


@dataclass
class MessageRecord:
    """A recorded message, its timestamp in nanoseconds and its paired message."""

    message: Any = None
    timestamp: int = -1
    other_message_index: int = -1

    def type_name(self) -> str:
        return _TYPE_NAMES[MessageType(self.message.type)]

    def is_awaiting_reply(self) -> bool:
        """Whether this is a call that should get a reply and has none yet."""
        return (
            self.message.type == MessageType.METHOD_CALL
            and bool(self.message.expects_reply)
            and self.other_message_index < 0
        )

    def is_reply_to_known_call(self) -> bool:
        return self.other_message_index >= 0 and self.message.type in _REPLY_TYPES

    def conversation_serial(self) -> int:
        """The serial of the call this message belongs to."""
        if self.message.type in _REPLY_TYPES:
            return self.message.reply_serial
        return self.message.serial

    def conversation_method(self, container: Sequence["MessageRecord"]) -> str:
        """The method name, or for a reply the method name of its call."""
        if self.is_reply_to_known_call():
            return container[self.other_message_index].message.method
        return self.message.method

    def conversation_start_time(self, container: Sequence["MessageRecord"]) -> int:
        if self.is_reply_to_known_call():
            return container[self.other_message_index].timestamp
        return self.timestamp

    def roundtrip_time(self, container: Sequence["MessageRecord"]) -> int:
        """Nanoseconds between call and this reply, or -1 if not applicable."""
        if self.is_reply_to_known_call():
            return self.timestamp - container[self.other_message_index].timestamp
        return -1

    def nice_sender(self, container: Sequence["MessageRecord"]) -> str:
        """Sender, with the well-known name the call went to appended if known."""
        sender = self.message.sender
        if _is_numeric_address(sender) and self.is_reply_to_known_call():
            other_dest = container[self.other_message_index].message.destination
            if other_dest and not other_dest.startswith(":"):
                sender += f" ({other_dest})"
        return sender

    def could_have_nicer_destination(self, container: Sequence["MessageRecord"]) -> bool:
        if self.message.type != MessageType.METHOD_CALL or self.other_message_index < 0:
            return False
        if _is_numeric_address(self.message.destination):
            return False
        other_sender = container[self.other_message_index].message.sender
        return other_sender.startswith(":")

    def nice_destination(self, container: Sequence["MessageRecord"]) -> str:
        """Destination, with the unique name that answered appended if known."""
        dest = self.message.destination
        if self.could_have_nicer_destination(container):
            dest += f" ({container[self.other_message_index].message.sender})"
        return dest


class EavesdropperModel:
    """A table of recorded messages with call/reply matching."""

    def __init__(
        self, data_changed: Optional[Callable[[int, Column], None]] = None
    ) -> None:
        self.messages: list[MessageRecord] = []
        self.is_recording = True
        self.data_changed = data_changed
        self._calls_awaiting_response: dict[tuple[int, str], int] = {}

    def add_message(self, message: _BusMessage, timestamp: int) -> None:
        """Record a message; does nothing while recording is off."""
        if not self.is_recording:
            return
        self.messages.append(MessageRecord(message, timestamp))
        current_index = len(self.messages) - 1

        # Match the call's sender with the reply's destination: calls may go to
        # well-known names that only the bus resolves to a concrete endpoint.
        if message.type == MessageType.METHOD_CALL:
            self._calls_awaiting_response[(message.serial, message.sender)] = current_index
        elif message.type in _REPLY_TYPES:
            key = (message.reply_serial, message.destination)
            original_index = self._calls_awaiting_response.pop(key, None)
            if original_index is not None:
                self.messages[current_index].other_message_index = original_index
                original = self.messages[original_index]
                original.other_message_index = current_index
                if original.could_have_nicer_destination(self.messages) and self.data_changed:
                    self.data_changed(original_index, Column.DESTINATION)

    def data(self, row: int, column: int) -> Union[str, float, None]:
        """The display value of a cell, or None where there is none."""
        if not 0 <= row < len(self.messages):
            raise IndexError(f"row {row} out of range")
        try:
            column = Column(column)
        except ValueError:
            return None
        record = self.messages[row]
        if column == Column.TYPE:
            return record.type_name()
        if column == Column.ROUNDTRIP_TIME:
            rtt = record.roundtrip_time(self.messages)
            if rtt == -1:
                return None
            return rtt / _NANOSECONDS_PER_MILLISECOND
        if column == Column.METHOD:
            return record.conversation_method(self.messages)
        if column == Column.INTERFACE:
            return record.message.interface
        if column == Column.PATH:
            return record.message.path
        if column == Column.SENDER:
            return record.nice_sender(self.messages)
        return record.nice_destination(self.messages)

    def header_data(self, section: int) -> Optional[str]:
        try:
            return _HEADERS[Column(section)]
        except ValueError:
            return None

    def row_count(self) -> int:
        return len(self.messages)

    def column_count(self) -> int:
        return len(Column)

    def set_recording(self, recording: bool) -> None:
        self.is_recording = recording

    def clear(self) -> None:
        self._calls_awaiting_response.clear()
        self.messages.clear()

    def save_to_file(self, path: Union[str, os.PathLike]) -> None:
        """Write all records to a dump file."""
        with open(path, "wb") as f:
            f.write(FILE_HEADER)
            for record in self.messages:
                data = bytes(record.message.save())
                f.write(
                    _RECORD_HEADER.pack(record.other_message_index, record.timestamp, len(data))
                )
                f.write(data)

    def load_from_file(
        self,
        path: Union[str, os.PathLike],
        deserialize: Callable[[bytes], Any],
    ) -> None:
        """Replace the contents with the records of a dump file.

        deserialize turns the stored bytes of one message into a message.
        Raises ValueError if the file is not a valid dump; the current
        contents are then kept.
        """
        with open(path, "rb") as f:
            content = f.read()
        if not content.startswith(FILE_HEADER):
            raise ValueError("not a message dump file")

        loaded: list[MessageRecord] = []
        offset = len(FILE_HEADER)
        while offset < len(content):
            if len(content) - offset < _RECORD_HEADER.size:
                raise ValueError("truncated record header")
            other_index, timestamp, size = _RECORD_HEADER.unpack_from(content, offset)
            offset += _RECORD_HEADER.size
            if offset >= len(content):
                raise ValueError("record without message data")
            data = content[offset:offset + size]
            if len(data) != size:
                raise ValueError("truncated message data")
            offset += size
            loaded.append(MessageRecord(deserialize(data), timestamp, other_index))

        self.clear()
        self.messages = loaded