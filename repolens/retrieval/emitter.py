"""
Stream Emitter: NDJSON framing for pipeline events.

Producer side: `StreamEmitter` turns the pipeline's async event iterator
into newline-terminated JSON lines, one per event, yielded as soon as each
event exists. It guarantees exactly one terminal event (`final` or `error`)
and stops after it.

Consumer side: `NDJSONDecoder` buffers network chunks and splits on the
newline delimiter, so events survive reads that cut a line in half.
"""

import codecs
import logging
from typing import AsyncIterator, List, Union

from pydantic import BaseModel, ValidationError

from repolens.schemas.events import ErrorEvent, is_terminal, stream_event_adapter

logger = logging.getLogger(__name__)

DELIMITER = "\n"


def encode_event(event: BaseModel) -> str:
    """One event as a single JSON line. Non-finite floats become null."""
    return event.model_dump_json(by_alias=True) + DELIMITER


def decode_event(line: Union[str, bytes]):
    return stream_event_adapter.validate_json(line)


class StreamEmitter:
    """
    Append-only writer over an async event source.
    """

    def __init__(self, events: AsyncIterator[BaseModel], request_id: str = "-"):
        self.events = events
        self.request_id = request_id
        self.closed = False

    async def lines(self) -> AsyncIterator[str]:
        try:
            async for event in self.events:
                if self.closed:
                    break
                yield encode_event(event)
                if is_terminal(event):
                    self.closed = True
                    break
            if not self.closed:
                logger.error(f"[{self.request_id}] Event source ended without a terminal event")
                self.closed = True
                yield encode_event(ErrorEvent.create("Stream ended without a result"))
        except Exception as e:
            if self.closed:
                raise
            logger.error(f"[{self.request_id}] Stream error: {e}", exc_info=True)
            self.closed = True
            yield encode_event(ErrorEvent.create(str(e)))
        finally:
            aclose = getattr(self.events, "aclose", None)
            if aclose is not None:
                await aclose()


class NDJSONDecoder:
    """Incremental buffer-and-split decoder for the event stream."""

    def __init__(self):
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")()

    def feed(self, chunk: Union[str, bytes]) -> List:
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        self._buffer += chunk
        *complete, self._buffer = self._buffer.split(DELIMITER)
        return self._decode_lines(complete)

    def close(self) -> List:
        """Flushes a trailing line that arrived without its delimiter."""
        tail = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""
        return self._decode_lines([tail])

    @staticmethod
    def _decode_lines(lines: List[str]) -> List:
        # A malformed line is dropped on its own; the lines around it still decode.
        events = []
        for line in lines:
            if not line.strip():
                continue
            try:
                events.append(decode_event(line))
            except ValidationError as e:
                logger.warning(f"Skipping undecodable stream line {line[:80]!r}: {e.error_count()} errors")
        return events
