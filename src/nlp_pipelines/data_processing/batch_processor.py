"""Record parsing, batching and serialization for streamed JSON lines."""

import json
from typing import Any, Dict, Iterable, Iterator, List

from ..models.exceptions import InputOutputError

Record = Dict[str, Any]


def parse_record(line: str, *, source: str = "", line_number: int = 0) -> Record:
    """Decode one ``{"input": ..., "output": ...}`` line.

    Raises:
        InputOutputError: On invalid JSON or a missing/non-string ``input``
    """
    try:
        record = json.loads(line)
    except json.JSONDecodeError as e:
        raise InputOutputError(f"Invalid JSON in {source} line {line_number}: {e}") from e
    if not isinstance(record, dict) or not isinstance(record.get("input"), str):
        raise InputOutputError(
            f"Record in {source} line {line_number} must be an object with a string 'input' field"
        )
    record.setdefault("output", None)
    return record


def iter_records(lines: Iterable[str], *, source: str = "") -> Iterator[Record]:
    """Parse records from lines, skipping blank ones; stops at the first bad line."""
    for line_number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        yield parse_record(line, source=source, line_number=line_number)


def batch_records(records: Iterable[Record], batch_size: int) -> Iterator[List[Record]]:
    """Group records into lists of ``batch_size``; the last one may be shorter."""
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    batch: List[Record] = []
    for record in records:
        batch.append(record)
        if len(batch) == batch_size:
            yield batch
            batch = []
    if batch:
        yield batch


def serialize_record(record: Record) -> str:
    return json.dumps(record, ensure_ascii=False)
