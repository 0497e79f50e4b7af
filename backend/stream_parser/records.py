"""Incremental record parsing for streamed `[{"text": ..., "ratio": ...}, ...]` payloads."""

import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Iterator, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .frame import TextSource, iterate_async

logger = logging.getLogger(__name__)


class StreamRecord(BaseModel):
    """One decomposed work item as emitted by the model."""
    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Name of the work item")
    ratio: float = Field(gt=0, le=1, description="Share of the parent's total time, in (0, 1]")

    @field_validator("text", mode="before")
    @classmethod
    def _text_must_be_non_empty_string(cls, value):
        if not isinstance(value, str):
            raise ValueError("text must be a string")
        value = value.strip()
        if not value:
            raise ValueError("text must not be empty")
        return value

    @field_validator("ratio", mode="before")
    @classmethod
    def _ratio_must_be_number(cls, value):
        # bool is an int subclass, and lax mode would coerce numeric strings
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("ratio must be a number")
        return value


@dataclass(frozen=True)
class ParsedRecord:
    record: StreamRecord
    raw: str


@dataclass(frozen=True)
class MalformedRecord:
    raw: str
    reason: str


RecordOutcome = Union[ParsedRecord, MalformedRecord]


def classify_record(raw: str) -> RecordOutcome:
    """Parse one candidate object and decide whether it is a well-formed record."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        return MalformedRecord(raw, f"invalid JSON: {e.msg}")

    if not isinstance(data, dict):
        return MalformedRecord(raw, "not a JSON object")

    try:
        record = StreamRecord.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        return MalformedRecord(raw, f"invalid fields: {fields}")

    return ParsedRecord(record, raw)


class _Candidate:
    """Characters of one possible record, from its opening brace onwards."""

    def __init__(self):
        self.chars: List[str] = ["{"]
        self.depth = 1
        self.in_string = False
        self.escape = False

    @property
    def raw(self) -> str:
        return "".join(self.chars)

    def push(self, char: str) -> bool:
        """Consume one character; return True when the object's closing brace arrives."""
        self.chars.append(char)
        if self.in_string:
            if self.escape:
                self.escape = False
            elif char == "\\":
                self.escape = True
            elif char == '"':
                self.in_string = False
            return False

        if char == '"':
            self.in_string = True
        elif char in "{[":
            self.depth += 1
        elif char in "}]":
            self.depth -= 1
            return self.depth == 0
        return False


class RecordScanner:
    """
    Character-level scanner over a JSON array of flat objects.

    String literals are tracked (with backslash escapes) so that braces and
    brackets inside them are never treated as structure. Outside a record,
    ``[``/``]`` move the array depth; when it drops back to zero after having
    been positive the scanner closes. Inside a record, nested braces and
    brackets are counted so the record ends at its matching ``}``.

    An unbalanced quote flips which characters look like string content. To
    recover, every ``{`` that the current parse sees inside a string also
    starts a speculative candidate; the first speculative candidate that
    parses as a record is emitted and scanning resumes after it.
    """

    def __init__(self):
        self._array_depth = 0
        self._seen_array = False
        self._closed = False
        self._in_string = False
        self._escape = False
        self._record: Optional[_Candidate] = None
        self._speculative: List[_Candidate] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_record(self) -> bool:
        return self._record is not None

    def push(self, char: str) -> Optional[RecordOutcome]:
        """Consume one character; return an outcome when a candidate object completes."""
        if self._closed:
            return None

        if self._record is not None:
            quoted = self._record.in_string and not self._record.escape
        else:
            quoted = self._in_string and not self._escape
        spawn = char == "{" and quoted

        outcome: Optional[RecordOutcome] = None
        if self._record is not None:
            if self._record.push(char):
                outcome = self._complete_record(self._record)
                self._record = None
                if isinstance(outcome, ParsedRecord):
                    self._speculative = []
                    return outcome
        else:
            self._push_outside(char)

        for candidate in list(self._speculative):
            if not candidate.push(char):
                continue
            self._speculative.remove(candidate)
            resynced = classify_record(candidate.raw)
            if isinstance(resynced, ParsedRecord):
                logger.debug("Resynchronized on record %r", resynced.raw)
                self._record = None
                self._speculative = []
                self._in_string = False
                self._escape = False
                return resynced

        if spawn:
            self._speculative.append(_Candidate())
        return outcome

    def _push_outside(self, char: str) -> None:
        if self._in_string:
            if self._escape:
                self._escape = False
            elif char == "\\":
                self._escape = True
            elif char == '"':
                self._in_string = False
            return

        if char == '"':
            self._in_string = True
        elif char == "{":
            self._record = _Candidate()
        elif char == "[":
            self._array_depth += 1
            self._seen_array = True
        elif char == "]" and self._array_depth > 0:
            self._array_depth -= 1
            if self._array_depth == 0 and self._seen_array:
                self._closed = True
                logger.debug("Record array closed")

    def _complete_record(self, candidate: _Candidate) -> RecordOutcome:
        outcome = classify_record(candidate.raw)
        if isinstance(outcome, MalformedRecord):
            logger.debug("Discarding malformed record (%s): %r", outcome.reason, outcome.raw)
        return outcome


async def parse_records(pieces: TextSource) -> AsyncIterator[StreamRecord]:
    """
    Yield each well-formed record from a stream of payload text as soon as
    its closing brace arrives.

    Ends when the source ends or when the enclosing array closes. Malformed
    candidates are skipped; errors raised by the source propagate unchanged.
    """
    scanner = RecordScanner()
    source = iterate_async(pieces)
    try:
        async for piece in source:
            for char in piece:
                outcome = scanner.push(char)
                if isinstance(outcome, ParsedRecord):
                    yield outcome.record
                if scanner.closed:
                    return
    finally:
        await source.aclose()


def iter_records(text: str) -> Iterator[StreamRecord]:
    """Synchronous variant of :func:`parse_records` for a complete payload."""
    scanner = RecordScanner()
    for char in text:
        outcome = scanner.push(char)
        if isinstance(outcome, ParsedRecord):
            yield outcome.record
        if scanner.closed:
            return
