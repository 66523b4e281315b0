"""
Record codec: one record <-> one row of a collection's CSV file.

Every field is written quoted with embedded quotes doubled; arrays and
objects are written as compact JSON text. On read each field is classified
by its content alone (the header carries no type information):

* starts with ``[`` or ``{``  -> JSON, or the raw text if it does not parse
* whole trimmed value numeric -> int / float
* anything else              -> str (empty stays ``""``)

A string that looks numeric (``"007"``) therefore comes back as a number.
Stock item names are matched through ``messbook.services.ledger.item_name_key``
so such a name still finds its item.
"""
import csv
import io
import json
import math
import re
from enum import Enum
from typing import Any, Dict, Iterable, List, NamedTuple, Tuple

Record = Dict[str, Any]

ENCODING = "utf-8"

_INT_RE = re.compile(r"^[+-]?\d+$")
_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")


class FieldKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    LIST = "list"
    MAP = "map"


class FieldValue(NamedTuple):
    kind: FieldKind
    value: Any


def classify(raw: str) -> FieldValue:
    """Tag a raw cell with the kind it decodes to."""
    if not raw:
        return FieldValue(FieldKind.STRING, "")

    if raw[0] in "[{":
        try:
            parsed = json.loads(raw)
        except ValueError:
            return FieldValue(FieldKind.STRING, raw)
        if isinstance(parsed, list):
            return FieldValue(FieldKind.LIST, parsed)
        if isinstance(parsed, dict):
            return FieldValue(FieldKind.MAP, parsed)
        return FieldValue(FieldKind.STRING, raw)

    number = parse_number(raw)
    if number is not None:
        return FieldValue(FieldKind.NUMBER, number)
    return FieldValue(FieldKind.STRING, raw)


def parse_number(raw: str):
    """Return ``raw`` as int/float if the trimmed text is a finite number, else None."""
    text = raw.strip()
    if _INT_RE.match(text):
        return int(text)
    if _NUMBER_RE.match(text):
        value = float(text)
        if math.isfinite(value):
            return value
    return None


def decode_value(raw: str) -> Any:
    return classify(raw).value


def encode_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (list, dict)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def union_header(records: Iterable[Record], base: Iterable[str] = ()) -> List[str]:
    """Ordered union of field names, first-seen order wins."""
    header: Dict[str, None] = dict.fromkeys(base)
    for record in records:
        for key in record:
            header.setdefault(key, None)
    return list(header)


def encode(header: List[str], records: Iterable[Record]) -> bytes:
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")

    writer.writerow(header)
    for record in records:
        writer.writerow([encode_value(record.get(field)) for field in header])

    return output.getvalue().encode(ENCODING)


def decode(data: bytes) -> Tuple[List[str], List[Record]]:
    text = data.decode("utf-8-sig")
    if not text.strip():
        return [], []

    reader = csv.reader(io.StringIO(text, newline=""))
    header = next(reader, [])

    records = []
    for row in reader:
        if not row or row == [""]:
            continue
        record = {}
        for i, field in enumerate(header):
            record[field] = decode_value(row[i] if i < len(row) else "")
        records.append(record)
    return header, records
