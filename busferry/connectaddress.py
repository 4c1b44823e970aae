"""Bus addresses: parsing, formatting and discovery of the standard buses."""

from __future__ import annotations

import os
import re
import sys
from dataclasses import dataclass
from enum import IntEnum

__all__ = [
    "StandardBus",
    "AddressType",
    "Role",
    "AddressError",
    "ConnectAddress",
    "parse_address",
    "session_bus_address",
]

_SYSTEM_BUS_SOCKET = "/var/run/dbus/system_bus_socket"
_MACHINE_ID_FILES = ("/var/lib/dbus/machine-id", "/etc/machine-id")
_SESSION_INFO_DIR = "/.dbus/session-bus/"
_SESSION_ADDRESS_PREFIX = "DBUS_SESSION_BUS_ADDRESS="
_INTEGER = re.compile(r"[+-]?\d+")


class StandardBus(IntEnum):
    SYSTEM = 0
    SESSION = 1


class AddressType(IntEnum):
    NONE = 0
    UNIX_PATH = 1
    UNIX_DIR = 2
    RUNTIME_DIR = 3
    TMP_DIR = 4
    ABSTRACT_UNIX_PATH = 5
    TCP = 6
    TCP4 = 7
    TCP6 = 8


class Role(IntEnum):
    NONE = 0
    BUS_CLIENT = 1
    PEER_CLIENT = 3
    PEER_SERVER = 4


class AddressError(ValueError):
    """Raised for a malformed address string."""


_TCP_TYPES = frozenset({AddressType.TCP, AddressType.TCP4, AddressType.TCP6})

_PATH_KEYS = {
    "path": AddressType.UNIX_PATH,
    "abstract": AddressType.ABSTRACT_UNIX_PATH,
    "dir": AddressType.UNIX_DIR,
    "tmpdir": AddressType.TMP_DIR,
    "runtime": AddressType.RUNTIME_DIR,
}

_PREFIXES = {
    AddressType.UNIX_PATH: "unix:path=",
    AddressType.ABSTRACT_UNIX_PATH: "unix:abstract=",
    AddressType.UNIX_DIR: "unix:dir=",
    AddressType.TMP_DIR: "unix:tmpdir=",
    AddressType.RUNTIME_DIR: "unix:runtime=yes",
    AddressType.TCP: "tcp:host=localhost,port=",
    AddressType.TCP4: "tcp:host=localhost,family=ipv4,port=",
    AddressType.TCP6: "tcp:host=localhost,family=ipv6,port=",
}


def _is_tcp(address_type: AddressType) -> bool:
    return address_type in _TCP_TYPES


def _is_unix() -> bool:
    return os.name == "posix"


@dataclass(eq=False)
class ConnectAddress:
    """Where and how to connect to (or listen for) a message bus peer."""

    type: AddressType = AddressType.NONE
    role: Role = Role.NONE
    path: str = ""
    hostname: str = ""
    port: int = -1
    guid: str = ""

    __hash__ = None  # type: ignore[assignment]

    @classmethod
    def for_standard_bus(cls, bus: StandardBus) -> "ConnectAddress":
        """Discover the address of the session or system bus."""
        address = cls(role=Role.BUS_CLIENT)
        if bus == StandardBus.SESSION:
            try:
                address.set_address_from_string(session_bus_address())
            except AddressError:
                pass
        elif _is_unix():
            address.type = AddressType.UNIX_PATH
            address.path = _SYSTEM_BUS_SOCKET
        else:
            address.type = AddressType.NONE
        return address

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConnectAddress):
            return NotImplemented
        if (self.type, self.role, self.guid) != (other.type, other.role, other.guid):
            return False
        if _is_tcp(self.type):
            return self.port == other.port
        return self.path == other.path

    def set_address_from_string(self, addr: str) -> None:
        """Parse a bus address string; role is left untouched.

        Raises AddressError if the string is malformed, leaving the address
        with no type.
        """
        self.type = AddressType.NONE
        self.path = ""
        self.port = -1
        self.guid = ""
        parsed = _parse_fields(addr, self.hostname)
        self.type, self.path, self.hostname, self.port, self.guid = parsed

    def to_string(self) -> str:
        """Format as a bus address string; empty for an invalid address."""
        prefix = _PREFIXES.get(self.type)
        if prefix is None:
            return ""
        parts = [prefix]
        if _is_tcp(self.type):
            parts.append(str(self.port))
        elif self.type != AddressType.RUNTIME_DIR:
            parts.append(self.path)
        if self.guid:
            parts.append(",guid=" + self.guid)
        return "".join(parts)

    def __str__(self) -> str:
        return self.to_string()

    def is_server_only(self) -> bool:
        """Whether the address can only be listened on, not connected to."""
        if _is_unix():
            if self.type in (AddressType.UNIX_DIR, AddressType.RUNTIME_DIR):
                return True
            if self.type == AddressType.TMP_DIR and sys.platform.startswith("linux"):
                return True
        if self.type == AddressType.TCP:
            return self.port == -1
        return False


def _parse_fields(addr: str, hostname: str) -> tuple[AddressType, str, str, int, str]:
    colon = addr.find(":")
    if colon <= 0:
        raise AddressError(f"missing transport method in {addr!r}")
    method = addr[:colon]
    if method in ("unix", "unixexec"):
        address_type = AddressType.UNIX_PATH
    elif method == "tcp":
        address_type = AddressType.TCP
    else:
        raise AddressError(f"unknown transport method {method!r}")

    path = ""
    port = -1
    guid = ""
    claimed: set[str] = set()

    def claim(category: str) -> None:
        if category in claimed:
            raise AddressError(f"duplicate or contradictory key in {addr!r}")
        claimed.add(category)

    end = len(addr)
    key_start = colon + 1
    while key_start < end:
        value_end = addr.find(",", key_start)
        if value_end == -1:
            value_end = end
        key_end = addr.find("=", key_start)
        if key_end == -1 or key_end == key_start:
            raise AddressError(f"malformed key-value pair in {addr!r}")
        value_start = key_end + 1
        if value_start >= value_end:
            raise AddressError(f"empty or malformed value in {addr!r}")
        key = addr[key_start:key_end]
        value = addr[value_start:value_end]

        new_type = _PATH_KEYS.get(key)
        if new_type is not None:
            if new_type == AddressType.RUNTIME_DIR and value != "yes":
                raise AddressError("runtime key only accepts the value 'yes'")
            claim("path")
            if address_type != AddressType.UNIX_PATH:
                raise AddressError(f"key {key!r} is not valid for this transport")
            address_type = new_type
            path = "" if new_type == AddressType.RUNTIME_DIR else value
        elif key == "host":
            claim("host")
            if not _is_tcp(address_type):
                raise AddressError("host is only valid for tcp addresses")
            hostname = value
        elif key == "port":
            claim("port")
            if not _is_tcp(address_type):
                raise AddressError("port is only valid for tcp addresses")
            if not _INTEGER.fullmatch(value):
                raise AddressError(f"invalid port {value!r}")
            port = int(value)
            if not 1 <= port <= 65535:
                raise AddressError(f"port {port} out of range")
        elif key == "family":
            claim("family")
            if address_type != AddressType.TCP:
                raise AddressError("family is only valid for tcp addresses")
            if value == "ipv4":
                address_type = AddressType.TCP4
            elif value == "ipv6":
                address_type = AddressType.TCP6
            else:
                raise AddressError(f"unknown address family {value!r}")
        elif key == "guid":
            claim("guid")
            guid = value
        else:
            raise AddressError(f"unknown key {key!r}")

        key_start = value_end + 1

    if address_type in (AddressType.UNIX_PATH, AddressType.ABSTRACT_UNIX_PATH):
        if not path:
            raise AddressError("unix address without a path")
    elif _is_tcp(address_type) and "host" not in claimed:
        raise AddressError("tcp address without a host")

    return address_type, path, hostname, port, guid


def parse_address(addr: str) -> ConnectAddress:
    """Return a new ConnectAddress parsed from a bus address string."""
    address = ConnectAddress()
    address.set_address_from_string(addr)
    return address


def _home_dir() -> str:
    home = os.environ.get("HOME")
    if home is None:
        import pwd

        home = pwd.getpwuid(os.getuid()).pw_dir
    return home


def _read_first_token(filename: str) -> str:
    try:
        with open(filename, encoding="ascii", errors="replace") as f:
            tokens = f.read().split()
    except OSError:
        return ""
    return tokens[0] if tokens else ""


def _session_info_file() -> str:
    uuid = ""
    for filename in _MACHINE_ID_FILES:
        uuid = _read_first_token(filename)
        if uuid:
            break
    if len(uuid) != 32:
        return ""
    display = os.environ.get("DISPLAY")
    if display is None:
        return ""
    last_colon = display.rfind(":")
    if last_colon == -1:
        return ""
    return _home_dir() + _SESSION_INFO_DIR + uuid + "-" + display[last_colon + 1:]


def session_bus_address() -> str:
    """Find the session bus address string, or an empty string if unknown."""
    env_address = os.environ.get("DBUS_SESSION_BUS_ADDRESS")
    if env_address is not None:
        return env_address
    if not _is_unix():
        return ""
    info_file = _session_info_file()
    if not info_file:
        return ""
    try:
        with open(info_file, encoding="utf-8", errors="replace") as f:
            content = f.read()
    except OSError:
        return ""
    for line in content.split("\n"):
        if line.startswith(_SESSION_ADDRESS_PREFIX):
            return line[len(_SESSION_ADDRESS_PREFIX):]
    return ""