"""Waiting for the reply to a sent message, and receivers of incoming messages."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, Optional

__all__ = ["ErrorCode", "MessageReceiver", "PendingReply"]

_log = logging.getLogger(__name__)


class ErrorCode(Enum):
    """Error states a pending reply can finish with."""

    NO_ERROR = "no error"
    DETACHED_PENDING_REPLY = "detached pending reply"
    TIMEOUT = "timeout"
    LOCAL_DISCONNECT = "local disconnect"
    REMOTE_DISCONNECT = "remote disconnect"
    AUTHENTICATION_FAILED = "authentication failed"

    @property
    def is_error(self) -> bool:
        return self is not ErrorCode.NO_ERROR


class MessageReceiver:
    """Receives messages that arrive on a connection.

    Both handlers do nothing by default; subclasses override what they need.
    """

    def handle_spontaneous_message_received(self, message: Any, connection: Any) -> None:
        """Called with a message that is not a reply to a pending call."""

    def handle_pending_reply_finished(self, pending_reply: "PendingReply", connection: Any) -> None:
        """Called when a pending reply has received its reply or failed."""


class PendingReply:
    """The outcome of a sent message that expects a reply.

    A pending reply is finished once a reply arrived or an error occurred;
    a detached pending reply (see detached()) has nothing to wait for.
    """

    def __init__(
        self,
        serial: int = 0,
        *,
        connection: Any = None,
        receiver: Optional[MessageReceiver] = None,
        unregister: Optional[Callable[["PendingReply"], None]] = None,
        error: ErrorCode = ErrorCode.NO_ERROR,
        cookie: Any = None,
    ) -> None:
        self.serial = serial
        self.connection = connection
        self.cookie = cookie
        self._receiver = receiver
        self._unregister = unregister
        self._error = error
        self._reply: Any = None
        self._finished = False
        self._null = False

    @classmethod
    def detached(cls) -> "PendingReply":
        """A pending reply that waits for nothing: finished, with a detached error."""
        pending = cls()
        pending._null = True
        return pending

    def __repr__(self) -> str:
        if self._null:
            return "PendingReply(detached)"
        return (
            f"PendingReply(serial={self.serial}, finished={self._finished}, "
            f"error={self._error.name})"
        )

    @property
    def receiver(self) -> Optional[MessageReceiver]:
        return None if self._null else self._receiver

    @receiver.setter
    def receiver(self, receiver: Optional[MessageReceiver]) -> None:
        if self._null:
            _log.warning("setting the receiver of a detached PendingReply does nothing")
            return
        self._receiver = receiver

    def is_null(self) -> bool:
        return self._null

    def is_finished(self) -> bool:
        """Whether a reply arrived or no reply can arrive anymore."""
        return self._null or self._finished

    def has_non_error_reply(self) -> bool:
        return not self._null and self._finished and not self._error.is_error

    def error(self) -> ErrorCode:
        if self._null:
            return ErrorCode.DETACHED_PENDING_REPLY
        return self._error

    def is_error(self) -> bool:
        return not self._null and self._error.is_error

    def reply(self) -> Any:
        """The reply message if finished with one, else None."""
        if self._null or not self._finished:
            return None
        return self._reply

    def take_reply(self) -> Any:
        """Remove and return the reply message; None if there is none."""
        if self._null or not self._finished:
            return None
        reply, self._reply = self._reply, None
        return reply

    def cancel(self) -> None:
        """Stop waiting: an unfinished reply is unregistered from its connection."""
        if self._null:
            return
        if not self._finished:
            if self._unregister is not None:
                self._unregister(self)
        else:
            self._reply = None

    def _check_pending(self) -> None:
        if self._null:
            raise RuntimeError("a detached PendingReply cannot finish")
        if self._finished:
            raise RuntimeError("the PendingReply is already finished")

    def _notify(self) -> None:
        if self._receiver is not None:
            self._receiver.handle_pending_reply_finished(self, self.connection)

    def handle_received(self, reply: Any) -> None:
        """Finish with a reply; the connection has already unregistered us."""
        self._check_pending()
        self._finished = True
        self._reply = reply
        self._notify()

    def handle_error(self, error: ErrorCode) -> None:
        """Finish with an error; an error recorded earlier takes precedence."""
        if self._null:
            raise RuntimeError("a detached PendingReply cannot finish")
        if not self._error.is_error:
            self._error = error
        self._finished = True
        self._reply = None
        self._notify()

    def handle_timeout(self) -> None:
        """Finish because no reply came in time; a late reply will not be routed here."""
        self._check_pending()
        if self._unregister is not None:
            self._unregister(self)
        self.handle_error(ErrorCode.TIMEOUT)