"""
MODULE OVERVIEW:
Incremental decoder for the raw `text/event-stream` wire format.

WHAT IS HAPPENING HERE:
Text arrives in arbitrary chunks, so we buffer until a full line is available and only
dispatch a block when we see the blank line that terminates it, exactly like the
browser EventSource does:

    event: update        <- optional event name (defaults to "message")
    id: 42               <- remembered as the last event id
    data: {"a": 1}       <- data lines are joined with "\n"
    : keep-alive         <- comment, ignored
                         <- blank line dispatches the block
"""
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class SSEBlock:
    data: str
    event: str = "message"
    id: Optional[str] = None
    retry_ms: Optional[int] = None


class SSEDecoder:
    def __init__(self):
        self._buffer = ""
        self._pending_cr = False
        # The last event id carries over between blocks until an `id:` line changes it
        self._last_id: Optional[str] = None
        self._reset_block()

    def _reset_block(self) -> None:
        self._event = ""
        self._data: List[str] = []
        self._retry: Optional[int] = None

    def feed(self, chunk: str) -> List[SSEBlock]:
        # A "\r\n" pair can be split across two chunks
        if self._pending_cr and chunk.startswith("\n"):
            chunk = chunk[1:]
        self._pending_cr = chunk.endswith("\r")

        self._buffer += chunk.replace("\r\n", "\n").replace("\r", "\n")
        blocks: List[SSEBlock] = []
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            block = self._process_line(line)
            if block is not None:
                blocks.append(block)
        return blocks

    def _process_line(self, line: str) -> Optional[SSEBlock]:
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        elif field == "id":
            # Ids containing NUL are ignored by the EventSource algorithm
            if "\0" not in value:
                self._last_id = value
        elif field == "retry":
            if value.isdigit():
                self._retry = int(value)
        return None

    def _dispatch(self) -> Optional[SSEBlock]:
        if not self._data:
            self._reset_block()
            return None
        block = SSEBlock(
            data="\n".join(self._data),
            event=self._event or "message",
            id=self._last_id,
            retry_ms=self._retry,
        )
        self._reset_block()
        return block
