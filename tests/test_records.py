from __future__ import annotations

import pytest

from stream_parser.records import (
    MalformedRecord,
    ParsedRecord,
    RecordScanner,
    StreamRecord,
    classify_record,
    iter_records,
    parse_records,
)
from tests._streams import chunked, collect, failing_factory, run

MIXED_PAYLOAD = """
[
  {"text": "gather requirements", "ratio": 0.2},
  {"text": 42, "ratio": 0.1},
  {"oops"},
  {"text": "sketch {wireframes} [v1]", "ratio": 0.3},
  {"text": "no ratio"},
  {"text": "boolean ratio", "ratio": true},
  {"text": "string ratio", "ratio": "0.4"},
  {"text": "zero ratio", "ratio": 0},
  {"text": "too large", "ratio": 1.5},
  {"text": "   ", "ratio": 0.1},
  {"text": "say \\"done}\\" twice", "ratio": 0.25, "meta": {"owner": "qa"}},
  {"text": "ship", "ratio": 1}
]
"""

EXPECTED = [
    ("gather requirements", 0.2),
    ("sketch {wireframes} [v1]", 0.3),
    ('say "done}" twice', 0.25),
    ("ship", 1.0),
]


def _parse(pieces) -> list:
    return [(r.text, r.ratio) for r in run(collect(parse_records(pieces)))]


@pytest.mark.parametrize("size", [1, 2, 3, 5, 8, 13, len(MIXED_PAYLOAD)])
def test_emits_only_valid_records_in_order_for_any_chunking(size):
    assert _parse(chunked(MIXED_PAYLOAD, size)) == EXPECTED


def test_scenario_records_keep_raw_ratios():
    payload = '\n[{"text":"design","ratio":0.4},{"text":"build","ratio":0.5},{"text":"test","ratio":0.3}]\n'
    assert _parse([payload]) == [("design", 0.4), ("build", 0.5), ("test", 0.3)]


def test_stops_when_array_closes():
    source = iter(['[{"text":"a","ratio":0.5}]', '{"text":"b","ratio":0.5}'])
    assert _parse(source) == [("a", 0.5)]
    assert list(source) == ['{"text":"b","ratio":0.5}']


def test_brackets_inside_strings_do_not_close_array():
    payload = '["]]", {"text":"a]","ratio":0.5}, {"text":"b","ratio":0.5}]'
    assert _parse([payload]) == [("a]", 0.5), ("b", 0.5)]


def test_records_without_enclosing_array_are_still_emitted():
    assert _parse(['{"text":"a","ratio":0.5} {"text":"b","ratio":0.5}']) == [("a", 0.5), ("b", 0.5)]


def test_source_failure_propagates_after_partial_records():
    seen = []

    async def consume():
        stream = failing_factory(['[{"text":"a","ratio":0.5},', ' {"text":"b"'], ConnectionError("reset"))
        async for record in parse_records(stream("prompt")):
            seen.append(record.text)

    with pytest.raises(ConnectionError):
        run(consume())
    assert seen == ["a"]


def test_iter_records_matches_async_parser():
    assert [(r.text, r.ratio) for r in iter_records(MIXED_PAYLOAD)] == EXPECTED


def test_scanner_reports_malformed_candidates():
    scanner = RecordScanner()
    outcomes = [scanner.push(c) for c in '[{"text": "x", "ratio": false}]']
    reported = [o for o in outcomes if o is not None]
    assert len(reported) == 1
    assert isinstance(reported[0], MalformedRecord)
    assert "ratio" in reported[0].reason
    assert scanner.closed


def test_classify_record_variants():
    ok = classify_record('{"text": " plan ", "ratio": 0.5}')
    assert isinstance(ok, ParsedRecord)
    assert ok.record == StreamRecord(text="plan", ratio=0.5)

    assert isinstance(classify_record('{"text": "plan", "ratio": 0.5'), MalformedRecord)
    assert isinstance(classify_record("[1, 2]"), MalformedRecord)
    assert classify_record('{"text": "plan"}').reason.startswith("invalid fields")


UNBALANCED_QUOTE_PAYLOADS = [
    (
        '[{"text":"a","ratio":0.5},{"text":"b,"ratio":0.2},{"text":"c","ratio":0.3},{"text":"d","ratio":0.2}]',
        ["a", "c", "d"],
    ),
    ('[{"text":"a","ratio":0.5}, oops" , {"text":"c","ratio":0.5}]', ["a", "c"]),
    (
        '[\n  {"text":"a","ratio":0.5},\n  {"text":"b,"ratio":0.2},\n  {"text":"sketch {v1}","ratio":0.3}\n]',
        ["a", "sketch {v1}"],
    ),
]


@pytest.mark.parametrize("payload, expected", UNBALANCED_QUOTE_PAYLOADS)
@pytest.mark.parametrize("size", [1, 4, 9, 1000])
def test_unbalanced_quote_does_not_swallow_later_records(payload, expected, size):
    assert [r.text for r in run(collect(parse_records(chunked(payload, size))))] == expected
    assert [r.text for r in iter_records(payload)] == expected


def test_array_still_closes_after_resynchronizing():
    scanner = RecordScanner()
    for char in '[{"text":"b,"ratio":0.2},{"text":"c","ratio":0.3}]':
        scanner.push(char)
    assert scanner.closed
    assert not scanner.in_record


def test_source_is_closed_when_array_ends_early():
    closed = []

    async def source():
        try:
            yield '[{"text":"a","ratio":1}]'
            yield '{"text":"b","ratio":1}'
        finally:
            closed.append(True)

    async def consume():
        texts = [record.text async for record in parse_records(source())]
        return texts, list(closed)

    assert run(consume()) == (["a"], [True])
