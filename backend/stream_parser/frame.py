"""Frame extraction: isolate the fenced payload inside a model's text stream."""

import logging
import os
from typing import AsyncIterable, AsyncIterator, Iterable, Union

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Configuration from environment
FRAME_OPEN_MARKER = os.getenv("FRAME_OPEN_MARKER", "```json")
FRAME_CLOSE_MARKER = os.getenv("FRAME_CLOSE_MARKER", "```")

logger = logging.getLogger(__name__)

TextSource = Union[Iterable[str], AsyncIterable[str]]


async def iterate_async(source: TextSource) -> AsyncIterator[str]:
    """
    Iterate a sync or async source of text fragments asynchronously.

    An async generator source is closed as soon as iteration stops, so an
    abandoned model stream does not stay open until garbage collection.
    """
    if hasattr(source, "__aiter__"):
        try:
            async for item in source:
                yield item
        finally:
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()
    else:
        for item in source:
            yield item


class FrameExtractor:
    """
    Stateful filter that releases only the text between the opening and
    closing frame markers.

    Text before the opening marker is held and dropped. Inside the payload a
    trailing window of ``len(close_marker) - 1`` characters is held back so a
    closing marker split across two fragments is still found.
    """

    def __init__(self, open_marker: str = FRAME_OPEN_MARKER, close_marker: str = FRAME_CLOSE_MARKER):
        if not open_marker or not close_marker:
            raise ValueError("Frame markers must be non-empty")
        self.open_marker = open_marker
        self.close_marker = close_marker
        self._buffer = ""
        self._started = False
        self._complete = False

    @property
    def started(self) -> bool:
        """True once the opening marker has been seen."""
        return self._started

    @property
    def complete(self) -> bool:
        """True once the closing marker was seen or the stream was finished."""
        return self._complete

    def feed(self, fragment: str) -> str:
        """Consume one fragment and return the payload text it releases."""
        if self._complete or not fragment:
            return ""

        self._buffer += fragment

        if not self._started:
            index = self._buffer.find(self.open_marker)
            if index == -1:
                self._buffer = _tail(self._buffer, len(self.open_marker) - 1)
                return ""
            self._started = True
            self._buffer = self._buffer[index + len(self.open_marker):]
            logger.debug("Opening frame marker found")

        index = self._buffer.find(self.close_marker)
        if index != -1:
            released = self._buffer[:index]
            self._buffer = ""
            self._complete = True
            logger.debug("Closing frame marker found")
            return released

        keep = len(self.close_marker) - 1
        if len(self._buffer) <= keep:
            return ""
        cut = len(self._buffer) - keep
        released, self._buffer = self._buffer[:cut], self._buffer[cut:]
        return released

    def finish(self) -> str:
        """
        Signal end of stream. Returns the held-back payload tail when the
        payload was opened but never closed; returns "" when no payload
        was ever found.
        """
        if self._complete:
            return ""
        self._complete = True
        released = self._buffer if self._started else ""
        self._buffer = ""
        return released


def _tail(text: str, size: int) -> str:
    if size <= 0:
        return ""
    return text[-size:]


async def extract_payload(
    fragments: TextSource,
    open_marker: str = FRAME_OPEN_MARKER,
    close_marker: str = FRAME_CLOSE_MARKER,
) -> AsyncIterator[str]:
    """
    Yield the payload text pieces found in ``fragments``.

    Reading stops as soon as the closing marker is seen; the remainder of the
    source is not consumed. If the source ends before any opening marker, no
    payload is yielded.
    """
    extractor = FrameExtractor(open_marker, close_marker)

    source = iterate_async(fragments)
    try:
        async for fragment in source:
            released = extractor.feed(fragment)
            if released:
                yield released
            if extractor.complete:
                return
    finally:
        await source.aclose()

    released = extractor.finish()
    if released:
        yield released
    if not extractor.started:
        logger.warning("Stream ended without an opening frame marker %r", open_marker)
