import pytest

from nlp_pipelines.data_processing.batch_processor import (
    batch_records,
    iter_records,
    parse_record,
    serialize_record,
)
from nlp_pipelines.models.exceptions import InputOutputError


def test_parse_record_defaults_output():
    assert parse_record('{"input": "hi"}') == {"input": "hi", "output": None}


@pytest.mark.parametrize("line", ["not json", "[1, 2]", '{"text": "hi"}', '{"input": 3}'])
def test_parse_record_rejects_bad_lines(line):
    with pytest.raises(InputOutputError, match="in.jsonl line 4"):
        parse_record(line, source="in.jsonl", line_number=4)


def test_iter_records_skips_blank_lines_and_stops_at_errors():
    records = iter_records(['{"input": "a"}', "", "  ", '{"input": "b"}', "oops", '{"input": "c"}'], source="s")
    assert next(records)["input"] == "a"
    assert next(records)["input"] == "b"
    with pytest.raises(InputOutputError, match="line 5"):
        next(records)


def test_batch_records_flushes_partial_batch():
    batches = list(batch_records(range(5), 2))
    assert batches == [[0, 1], [2, 3], [4]]
    assert list(batch_records([], 2)) == []
    with pytest.raises(ValueError):
        list(batch_records([1], 0))


def test_serialize_record_keeps_unicode():
    assert serialize_record({"input": "é", "output": [1.5]}) == '{"input": "é", "output": [1.5]}'
