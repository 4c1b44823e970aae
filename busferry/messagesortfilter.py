"""Filtering and conversation grouping over an EavesdropperModel."""

from __future__ import annotations

from busferry.eavesdroppermodel import EavesdropperModel, MessageType

__all__ = ["MessageSortFilter"]


def _contains(haystack: str, needle: str) -> bool:
    return needle.casefold() in haystack.casefold()


class MessageSortFilter:
    """Selects and orders the rows of an EavesdropperModel."""

    def __init__(self, model: EavesdropperModel) -> None:
        self.model = model
        self.filter_string = ""
        self.only_unanswered = False
        self.grouping = False

    def filter_accepts_row(self, source_row: int) -> bool:
        if not self.filter_string and not self.only_unanswered:
            return True

        records = self.model.messages
        record = records[source_row]

        if self.only_unanswered:
            message_type = record.message.type
            if message_type == MessageType.METHOD_CALL:
                if not record.is_awaiting_reply():
                    return False
            elif message_type == MessageType.ERROR:
                if not record.is_reply_to_known_call():
                    return False
            else:
                return False

        if not self.filter_string:
            return True
        candidates = (
            record.conversation_method(records),
            record.nice_sender(records),
            record.nice_destination(records),
            record.message.interface,
            record.message.path,
        )
        return any(_contains(text, self.filter_string) for text in candidates)

    def less_than(self, left: int, right: int) -> bool:
        """Order source rows by the start time of their conversation."""
        records = self.model.messages
        return (
            records[left].conversation_start_time(records)
            < records[right].conversation_start_time(records)
        )

    def set_filter_string(self, text: str) -> None:
        self.filter_string = text

    def set_only_unanswered(self, only_unanswered: bool) -> None:
        self.only_unanswered = only_unanswered

    def set_grouping(self, enable: bool) -> None:
        """Group replies with their calls (sort by conversation) or keep arrival order."""
        self.grouping = enable

    def rows(self) -> list[int]:
        """The accepted source rows, in display order."""
        accepted = [row for row in range(self.model.row_count()) if self.filter_accepts_row(row)]
        if self.grouping:
            records = self.model.messages
            accepted.sort(key=lambda row: records[row].conversation_start_time(records))
        return accepted