"""Client side of the bus authentication handshake."""

from __future__ import annotations

import os
from collections import deque
from collections.abc import Callable
from enum import IntEnum
from typing import Optional, Protocol

__all__ = ["AuthState", "AuthClient", "Transport", "hex_encode"]

_ANONYMOUS_LINE = b"AUTH ANONYMOUS 646665727279\r\n"
_NEGOTIATE_LINE = b"NEGOTIATE_UNIX_FD\r\n"
_AGREE_LINE = b"AGREE_UNIX_FD\r\n"
_BEGIN_LINE = b"BEGIN\r\n"
_END_OF_LINE = b"\r\n"


class AuthState(IntEnum):
    INITIAL = 0
    EXPECT_OK = 1
    EXPECT_UNIX_FD_RESPONSE = 2
    AUTHENTICATION_FAILED = 3
    AUTHENTICATED = 4


class Transport(Protocol):
    """What the authentication client needs from a byte stream."""

    is_open: bool
    supported_passing_unix_fds_count: int

    def read(self, size: int) -> bytes:
        """Return up to size bytes; empty if nothing is available."""

    def write(self, data: bytes) -> None:
        """Write all of data."""


def hex_encode(data: str | bytes) -> str:
    """Encode text or bytes as lowercase hexadecimal."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return data.hex()


def _is_unix() -> bool:
    return os.name == "posix"


def _default_identity() -> Optional[str]:
    if _is_unix():
        return str(os.geteuid())
    return None


class AuthClient:
    """Runs the line-based authentication dialog over a transport.

    On construction, the initial null byte and the first authentication
    request are written. Call handle_transport_can_read() whenever the
    transport has data to read.
    """

    def __init__(
        self,
        transport: Transport,
        completion_listener: Optional[Callable[["AuthClient"], None]] = None,
        identity: Optional[str] = None,
    ) -> None:
        self._transport = transport
        self.completion_listener = completion_listener
        self._state = AuthState.INITIAL
        self._fd_passing_enabled = False
        self._line = bytearray()

        if identity is None:
            identity = _default_identity()
        self._auth_lines: deque[bytes] = deque()
        if identity is not None:
            self._auth_lines.append(
                f"AUTH EXTERNAL {hex_encode(identity)}\r\n".encode("ascii")
            )
        self._auth_lines.append(_ANONYMOUS_LINE)

        transport.write(b"\0")
        self._send_next_auth_method()

    @property
    def state(self) -> AuthState:
        return self._state

    def is_finished(self) -> bool:
        return self._state >= AuthState.AUTHENTICATION_FAILED

    def is_authenticated(self) -> bool:
        return self._state == AuthState.AUTHENTICATED

    def is_unix_fd_passing_enabled(self) -> bool:
        return self._fd_passing_enabled

    def handle_transport_can_read(self) -> bool:
        """Process available input; return False once authentication has failed."""
        was_finished = self.is_finished()
        while not self.is_finished() and self._read_line():
            self._advance_state()
        if not self._transport.is_open:
            self._state = AuthState.AUTHENTICATION_FAILED
        ok = self._state != AuthState.AUTHENTICATION_FAILED
        if self.is_finished() and not was_finished and self.completion_listener:
            self.completion_listener(self)
        return ok

    def _is_end_of_line(self) -> bool:
        return self._line.endswith(_END_OF_LINE)

    def _read_line(self) -> bool:
        if self._is_end_of_line():
            self._line.clear()
        while True:
            byte = self._transport.read(1)
            if len(byte) != 1:
                return False
            self._line += byte
            if self._is_end_of_line():
                return True

    def _send_next_auth_method(self) -> None:
        if not self._auth_lines:
            self._state = AuthState.AUTHENTICATION_FAILED
            return
        self._transport.write(self._auth_lines.popleft())
        self._state = AuthState.EXPECT_OK

    def _begin(self, fd_passing: bool) -> None:
        self._fd_passing_enabled = fd_passing
        self._transport.write(_BEGIN_LINE)
        self._state = AuthState.AUTHENTICATED

    def _advance_state(self) -> None:
        line = bytes(self._line)
        if self._state == AuthState.EXPECT_OK:
            if line.startswith(b"OK "):
                if _is_unix() and self._transport.supported_passing_unix_fds_count > 0:
                    self._transport.write(_NEGOTIATE_LINE)
                    self._state = AuthState.EXPECT_UNIX_FD_RESPONSE
                    return
                self._begin(line == _AGREE_LINE)
            elif line.startswith(b"REJECTED"):
                self._send_next_auth_method()
            else:
                self._state = AuthState.AUTHENTICATION_FAILED
        elif self._state == AuthState.EXPECT_UNIX_FD_RESPONSE and _is_unix():
            self._begin(line == _AGREE_LINE)
        else:
            self._state = AuthState.AUTHENTICATION_FAILED