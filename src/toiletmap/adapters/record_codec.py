import json
import logging
import re
from typing import Any

import yaml

from ..core.model import ToiletRecord
from ..core.ports import RecordCodec
from ..errors import MalformedRecord, MissingRequiredField

logger = logging.getLogger(__name__)

DELIMITER = "---"

# Order in which keys are written; also the set of required keys minus "description".
FIELD_ORDER = [
    "id",
    "name",
    "address",
    "latitude",
    "longitude",
    "description",
    "isFree",
    "rating",
    "totalRatings",
    "likes",
    "dislikes",
    "images",
    "createdAt",
    "updatedAt",
]
REQUIRED_FIELDS = [k for k in FIELD_ORDER if k != "description"]

# Written after the fields by this codec only. Records without it predate
# escaping and keep their quoted values byte for byte.
FORMAT_KEY = "format"
FORMAT_VERSION = 2

_NUMBER = re.compile(r"-?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


def _unquote(value: str, escaped: bool) -> str:
    if not escaped:
        return value[1:-1]
    # JSON string literals from this writer; YAML covers hand-edited single quotes.
    if value[0] == '"':
        try:
            decoded = json.loads(value)
            if isinstance(decoded, str):
                return decoded
        except json.JSONDecodeError:
            pass
    try:
        decoded = yaml.safe_load(value)
        if isinstance(decoded, str):
            return decoded
    except yaml.YAMLError:
        pass
    return value[1:-1]


def parse_value(value: str, escaped: bool = False) -> Any:
    """
    Infer the type of a raw metadata value.

    Priority: quoted string, [...] array (empty on bad JSON), bare
    true/false, number, raw string. Quoted strings are unescaped only
    when the record carries the format marker.
    """
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return _unquote(value, escaped)
    if value.startswith("[") and value.endswith("]"):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return []
        return parsed if isinstance(parsed, list) else []
    if value == "true":
        return True
    if value == "false":
        return False
    if _NUMBER.fullmatch(value):
        if any(c in value for c in ".eE"):
            return float(value)
        return int(value)
    return value


def format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, list):
        return json.dumps([str(v) for v in value], ensure_ascii=False)
    return json.dumps(str(value), ensure_ascii=False)


def split_block(text: str) -> tuple[list[str], str]:
    """
    Return (metadata lines, body) for a record text.

    Delimiters count only as whole lines, so a value containing "---"
    cannot close the block early.
    """
    lines = text.splitlines(keepends=True)
    marks = [i for i, ln in enumerate(lines) if ln.strip() == DELIMITER]
    if len(marks) < 2:
        raise MalformedRecord("Invalid markdown format: metadata block is not closed")
    start, end = marks[0], marks[1]
    meta_lines = [ln.rstrip("\r\n") for ln in lines[start + 1 : end]]
    return meta_lines, "".join(lines[end + 1 :])


def parse_metadata(lines: list[str]) -> dict[str, Any]:
    raw: dict[str, str] = {}
    for line in lines:
        idx = line.find(":")
        if idx == -1:
            continue
        key = line[:idx].strip()
        if not key:
            continue
        raw[key] = line[idx + 1 :].strip()

    version = parse_value(raw.get(FORMAT_KEY, ""))
    escaped = type(version) is int and version >= FORMAT_VERSION
    return {key: parse_value(value, escaped) for key, value in raw.items()}


def _to_str(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _to_float(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise MalformedRecord(f"Field {key} is not a number: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise MalformedRecord(f"Field {key} is not a number: {value!r}") from e


def _to_int(key: str, value: Any) -> int:
    number = _to_float(key, value)
    if not number.is_integer() or number < 0:
        raise MalformedRecord(f"Field {key} is not a non-negative integer: {value!r}")
    return int(number)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _to_images(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def render_body(record: ToiletRecord) -> str:
    lat, lng = format_value(record.latitude), format_value(record.longitude)
    lines = [
        f"# {record.name}",
        "",
        f"**Address:** {record.address}",
        f"**Coordinates:** {lat}, {lng}",
        f"**Cost:** {'Free' if record.is_free else 'Paid'}",
    ]
    if record.description:
        lines.append(f"**Description:** {record.description}")
    lines += [
        "",
        "## Location",
        f"This toilet is located at coordinates {lat}, {lng}.",
    ]
    return "\n".join(lines) + "\n"


class MarkdownRecordCodec(RecordCodec):
    def encode(self, record: ToiletRecord) -> str:
        values = {
            "id": record.id,
            "name": record.name,
            "address": record.address,
            "latitude": float(record.latitude),
            "longitude": float(record.longitude),
            "description": record.description or "",
            "isFree": bool(record.is_free),
            "rating": float(record.rating),
            "totalRatings": record.total_ratings,
            "likes": int(record.likes),
            "dislikes": int(record.dislikes),
            "images": list(record.images),
            "createdAt": record.created_at,
            "updatedAt": record.updated_at,
        }
        block = "\n".join(f"{k}: {format_value(values[k])}" for k in FIELD_ORDER)
        block += f"\n{FORMAT_KEY}: {FORMAT_VERSION}"
        return f"{DELIMITER}\n{block}\n{DELIMITER}\n\n{render_body(record)}"

    def decode(self, text: str) -> ToiletRecord:
        meta_lines, _body = split_block(text)
        meta = parse_metadata(meta_lines)

        missing = [k for k in REQUIRED_FIELDS if k not in meta]
        if missing:
            raise MissingRequiredField(missing)

        likes = _to_int("likes", meta["likes"])
        dislikes = _to_int("dislikes", meta["dislikes"])
        stored_total = meta["totalRatings"]
        if _to_float("totalRatings", stored_total) != likes + dislikes:
            logger.debug(
                "Record %s: stored totalRatings=%r differs from likes+dislikes=%d",
                meta["id"], stored_total, likes + dislikes,
            )

        return ToiletRecord(
            id=_to_str(meta["id"]),
            name=_to_str(meta["name"]),
            address=_to_str(meta["address"]),
            latitude=_to_float("latitude", meta["latitude"]),
            longitude=_to_float("longitude", meta["longitude"]),
            description=_to_str(meta.get("description", "")),
            is_free=_to_bool(meta["isFree"]),
            rating=_to_float("rating", meta["rating"]),
            likes=likes,
            dislikes=dislikes,
            images=_to_images(meta["images"]),
            created_at=_to_str(meta["createdAt"]),
            updated_at=_to_str(meta["updatedAt"]),
        )
