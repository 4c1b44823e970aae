import pytest

from busferry.pendingreply import ErrorCode, MessageReceiver, PendingReply


class RecordingReceiver(MessageReceiver):
    def __init__(self):
        self.finished = []

    def handle_pending_reply_finished(self, pending_reply, connection):
        self.finished.append((pending_reply, connection))


def test_detached_state():
    pr = PendingReply.detached()
    assert pr.is_null()
    assert pr.is_finished()
    assert pr.error() is ErrorCode.DETACHED_PENDING_REPLY
    assert not pr.is_error()
    assert not pr.has_non_error_reply()
    assert pr.reply() is None
    assert pr.take_reply() is None


def test_detached_receiver_cannot_be_set():
    pr = PendingReply.detached()
    pr.receiver = RecordingReceiver()
    assert pr.receiver is None


def test_detached_cannot_finish():
    pr = PendingReply.detached()
    with pytest.raises(RuntimeError):
        pr.handle_received("reply")
    with pytest.raises(RuntimeError):
        pr.handle_error(ErrorCode.TIMEOUT)


def test_new_reply_is_unfinished():
    pr = PendingReply(7)
    assert not pr.is_null()
    assert not pr.is_finished()
    assert pr.error() is ErrorCode.NO_ERROR
    assert not pr.has_non_error_reply()
    assert pr.reply() is None


def test_received_reply_notifies_receiver():
    receiver = RecordingReceiver()
    conn = object()
    pr = PendingReply(3, connection=conn, receiver=receiver)
    pr.handle_received("the reply")
    assert pr.is_finished()
    assert pr.has_non_error_reply()
    assert pr.reply() == "the reply"
    assert receiver.finished == [(pr, conn)]


def test_take_reply_removes_it():
    pr = PendingReply(3)
    pr.handle_received("the reply")
    assert pr.take_reply() == "the reply"
    assert pr.reply() is None
    assert pr.take_reply() is None


def test_receive_twice_raises():
    pr = PendingReply(1)
    pr.handle_received("a")
    with pytest.raises(RuntimeError):
        pr.handle_received("b")


def test_error_finishes_without_reply():
    receiver = RecordingReceiver()
    pr = PendingReply(1, receiver=receiver)
    pr.handle_error(ErrorCode.REMOTE_DISCONNECT)
    assert pr.is_finished()
    assert pr.is_error()
    assert pr.error() is ErrorCode.REMOTE_DISCONNECT
    assert not pr.has_non_error_reply()
    assert pr.reply() is None
    assert len(receiver.finished) == 1


def test_earlier_error_takes_precedence_over_timeout():
    pr = PendingReply(1, error=ErrorCode.LOCAL_DISCONNECT)
    pr.handle_timeout()
    assert pr.error() is ErrorCode.LOCAL_DISCONNECT


def test_timeout_unregisters_and_errors():
    unregistered = []
    pr = PendingReply(9, unregister=unregistered.append)
    pr.handle_timeout()
    assert unregistered == [pr]
    assert pr.error() is ErrorCode.TIMEOUT
    assert pr.is_finished()


def test_cancel_unfinished_unregisters():
    unregistered = []
    pr = PendingReply(4, unregister=unregistered.append)
    pr.cancel()
    assert unregistered == [pr]


def test_cancel_finished_drops_reply_without_unregistering():
    unregistered = []
    pr = PendingReply(4, unregister=unregistered.append)
    pr.handle_received("r")
    pr.cancel()
    assert unregistered == []
    assert pr.reply() is None


def test_receiver_and_cookie_roundtrip():
    receiver = RecordingReceiver()
    pr = PendingReply(2)
    pr.receiver = receiver
    pr.cookie = "placeholder"
    assert pr.receiver is receiver
    assert pr.cookie == "placeholder"


def test_default_receiver_handlers_return_none():
    receiver = MessageReceiver()
    assert receiver.handle_spontaneous_message_received("m", None) is None
    assert receiver.handle_pending_reply_finished(PendingReply(1), None) is None


def test_error_code_is_error_flag():
    pr = PendingReply(1)
    assert not pr.error().is_error
    pr.handle_error(ErrorCode.TIMEOUT)
    assert pr.error().is_error
    assert pr.is_error()