# catalog_sync/services/feed_parser.py
"""
Turns raw feed bytes into a list of flat record dicts.

CSV lines are tokenized with the csv module and checked against the header
width; the well-formed rows become a pandas frame of text columns, so UPCs
keep their leading zeros. Rows whose field count does not match the header
are reported as malformed instead of aborting the feed.
"""

import csv
import io
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple
from xml.parsers.expat import ExpatError

import pandas as pd
import xmltodict

from catalog_sync.core.enums import FeedFormat
from catalog_sync.core.exceptions import FeedFormatError
from catalog_sync.core.utils import lookup_path

logger = logging.getLogger(__name__)


@dataclass
class MalformedRow:
    row: Optional[int]
    message: str


@dataclass
class ParsedFeed:
    records: List[Dict[str, Any]] = field(default_factory=list)
    malformed: List[MalformedRow] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)


def strip_namespaces(node: Any) -> Any:
    """Drop "ns:" key prefixes and xmlns attributes from an xmltodict tree."""
    if isinstance(node, list):
        return [strip_namespaces(item) for item in node]
    if not isinstance(node, dict):
        return node
    cleaned = {}
    for key, value in node.items():
        if key.startswith("@xmlns"):
            continue
        prefix = "@" if key.startswith("@") else ""
        local = key.lstrip("@").split(":", 1)[-1]
        cleaned[prefix + local] = strip_namespaces(value)
    return cleaned


def _flatten_xml_record(node: Any) -> Any:
    """Collapse text-bearing elements ({"#text": ...}) to their text and drop attributes."""
    if isinstance(node, dict):
        if "#text" in node:
            return node["#text"]
        flat = {key: _flatten_xml_record(value) for key, value in node.items() if not key.startswith("@")}
        return flat or None
    if isinstance(node, list):
        return [_flatten_xml_record(item) for item in node]
    return node


def _read_rows(data: bytes, delimiter: str) -> Iterator[Tuple[int, List[str]]]:
    """Yield (line number, fields) for every non-blank CSV line."""
    text = data.decode("utf-8-sig", errors="replace")
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, skipinitialspace=True)
    try:
        for fields in reader:
            if not fields or (len(fields) == 1 and not fields[0].strip()):
                continue
            yield reader.line_num, fields
    except csv.Error as e:
        raise FeedFormatError(f"CSV feed could not be parsed at line {reader.line_num}: {e}")


def parse_csv(data: bytes, delimiter: str = ",", required_columns: Sequence[Sequence[str]] = ()) -> ParsedFeed:
    """
    Parse a header-row CSV feed.

    Every line is checked against the header width, wherever it appears,
    so one short or over-long row never shifts the columns of the others.

    ``required_columns`` is a list of alternatives: the header must contain
    at least one column from each group, otherwise the whole feed is
    rejected with ``FeedFormatError``.
    """
    parsed = ParsedFeed()
    rows = _read_rows(data, delimiter)
    try:
        _, header = next(rows)
    except StopIteration:
        raise FeedFormatError("CSV feed is empty (no header row)")

    parsed.columns = [column.strip() for column in header]
    for group in required_columns:
        if not any(column in parsed.columns for column in group):
            raise FeedFormatError(
                f"CSV header is missing required column ({' or '.join(group)}); found: {', '.join(parsed.columns)}"
            )

    width = len(parsed.columns)
    good_rows: List[List[str]] = []
    line_numbers: List[int] = []
    for line_number, fields in rows:
        if len(fields) != width:
            parsed.malformed.append(
                MalformedRow(row=line_number, message=f"Row has {len(fields)} fields, expected {width}")
            )
            continue
        good_rows.append(fields)
        line_numbers.append(line_number)

    frame = pd.DataFrame(good_rows, columns=parsed.columns, index=line_numbers, dtype=str)
    parsed.records = frame.to_dict(orient="records")

    logger.debug(f"Parsed CSV feed: {len(parsed.records)} records, {len(parsed.malformed)} malformed")
    return parsed


def _as_record_list(value: Any, record_path: Optional[str]) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        return value
    raise FeedFormatError(f"Feed node at {record_path!r} is not a record list")


def _has_path(document: Any, path: str) -> bool:
    if isinstance(document, dict) and path in document:
        return True
    current = document
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return False
        current = current[part]
    return True


def _resolve_records(document: Any, record_path: Optional[str]) -> List[Any]:
    if not record_path:
        return _as_record_list(document, record_path)
    records = lookup_path(document, record_path)
    if records is None:
        # a present parent with no record children means an empty feed
        parent_path = record_path.rsplit(".", 1)[0] if "." in record_path else None
        if parent_path is not None and _has_path(document, parent_path):
            return []
        if parent_path is None and isinstance(document, dict):
            return []
        raise FeedFormatError(f"Feed does not contain {record_path!r}")
    return _as_record_list(records, record_path)


def parse_json(data: bytes, record_path: Optional[str] = None) -> ParsedFeed:
    try:
        document = json.loads(data.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise FeedFormatError(f"JSON feed could not be parsed: {e}")

    parsed = ParsedFeed()
    for position, record in enumerate(_resolve_records(document, record_path)):
        if isinstance(record, dict):
            parsed.records.append(record)
        else:
            parsed.malformed.append(MalformedRow(row=position + 1, message="Record is not an object"))
    return parsed


def parse_xml(data: bytes, record_path: Optional[str] = None) -> ParsedFeed:
    try:
        document = strip_namespaces(xmltodict.parse(data))
    except ExpatError as e:
        raise FeedFormatError(f"XML feed could not be parsed: {e}")

    parsed = ParsedFeed()
    for position, node in enumerate(_resolve_records(document, record_path)):
        record = _flatten_xml_record(node)
        if isinstance(record, dict):
            parsed.records.append(record)
        else:
            parsed.malformed.append(MalformedRow(row=position + 1, message="Record element has no fields"))
    return parsed


def parse_feed(
    data: bytes,
    feed_format: FeedFormat,
    *,
    record_path: Optional[str] = None,
    delimiter: str = ",",
    required_columns: Sequence[Sequence[str]] = (),
) -> ParsedFeed:
    feed_format = FeedFormat(feed_format)
    if feed_format == FeedFormat.CSV:
        return parse_csv(data, delimiter=delimiter, required_columns=required_columns)
    if feed_format == FeedFormat.JSON:
        return parse_json(data, record_path=record_path)
    return parse_xml(data, record_path=record_path)
