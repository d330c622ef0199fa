"""Messages, rows and their binary and text encodings."""

from __future__ import annotations

import io
import logging
import math
import struct
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import IntEnum

from flightpipe.columns import (
    COMMA_SEPARATOR,
    EQUALS_SEPARATOR,
    NEW_LINE,
    is_float_column,
    is_int_column,
)

logger = logging.getLogger(__name__)

SIZE_UDP_PACKET = 2
_UINT32_MASK = 0xFFFFFFFF
_UINT16_MASK = 0xFFFF
_FLOAT32 = struct.Struct(">f")


class MessageType(IntEnum):
    """Kinds of messages travelling through the queues."""

    FLIGHT_ROWS = 0
    EOF_FLIGHT_ROWS = 1
    AIRPORTS = 2
    EOF_AIRPORTS = 3


class PacketType(IntEnum):
    """Kinds of packets used by leader election."""

    ELECTION = 1
    COORDINATOR = 2
    HEALTH_CHECK = 3
    ACK = 4


class DynamicMap:
    """A row: column names mapped to their raw encoded values."""

    __slots__ = ("_columns",)

    def __init__(self, columns: Mapping[str, bytes] | None = None) -> None:
        self._columns: dict[str, bytes] = dict(columns or {})

    @property
    def column_count(self) -> int:
        return len(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def __contains__(self, key: object) -> bool:
        return key in self._columns

    def __iter__(self) -> Iterator[str]:
        return iter(self._columns)

    def __getitem__(self, key: str) -> bytes:
        return self._get(key)

    def items(self):
        return self._columns.items()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DynamicMap):
            return NotImplemented
        return self._columns == other._columns

    def __repr__(self) -> str:
        return f"DynamicMap({self._columns!r})"

    def _get(self, key: str) -> bytes:
        try:
            return self._columns[key]
        except KeyError:
            raise KeyError(f"column {key!r} not found") from None

    def _get_four_bytes(self, key: str) -> bytes:
        value = self._get(key)
        if len(value) != 4:
            raise ValueError(
                f"column {key!r} has {len(value)} bytes, expected 4"
            )
        return value

    def get_as_string(self, key: str) -> str:
        """Return the column decoded as text."""
        return deserialize_string(self._get(key))

    def get_as_int(self, key: str) -> int:
        """Return the column decoded as a big-endian unsigned 32-bit integer."""
        return int.from_bytes(self._get_four_bytes(key), "big")

    def get_as_float(self, key: str) -> float:
        """Return the column decoded as a big-endian 32-bit float."""
        return _FLOAT32.unpack(self._get_four_bytes(key))[0]

    def add_column(self, key: str, value: bytes) -> None:
        """Add or replace a column."""
        self._columns[key] = bytes(value)

    def reduce_to_columns(self, columns: Iterable[str]) -> DynamicMap:
        """Return a new row holding only the given columns.

        Raises KeyError if any of them is missing.
        """
        return DynamicMap({key: self._get(key) for key in columns})


@dataclass
class Message:
    """A batch of rows belonging to one client."""

    message_type: int
    rows: list[DynamicMap] = field(default_factory=list)
    client_id: str = ""
    message_id: int = 0
    row_id: int = 0

    def with_rows(self, rows: Iterable[DynamicMap]) -> Message:
        """Return a message with the same header and the given rows."""
        return Message(
            message_type=self.message_type,
            rows=list(rows),
            client_id=self.client_id,
            message_id=self.message_id,
            row_id=self.row_id,
        )


@dataclass(frozen=True)
class UDPPacket:
    """A two-byte control packet."""

    packet_type: int
    node_id: int = 0


def serialize_uint(value: int) -> bytes:
    """Encode an unsigned 32-bit integer, big-endian."""
    return int(value).to_bytes(4, "big")


def serialize_float(value: float) -> bytes:
    """Encode a value as a big-endian 32-bit float."""
    try:
        return _FLOAT32.pack(value)
    except OverflowError:
        return _FLOAT32.pack(math.copysign(math.inf, value))


def serialize_string(value: str) -> bytes:
    return value.encode("utf-8")


def deserialize_string(value: bytes) -> str:
    return bytes(value).decode("utf-8", errors="replace")


def _read_exact(stream: io.BytesIO, size: int) -> bytes:
    chunk = stream.read(size)
    if len(chunk) != size:
        raise ValueError(
            f"truncated data: expected {size} bytes, got {len(chunk)}"
        )
    return chunk


def _read_uint(stream: io.BytesIO) -> int:
    return int.from_bytes(_read_exact(stream, 4), "big")


def _read_dyn_map(stream: io.BytesIO) -> DynamicMap:
    columns: dict[str, bytes] = {}
    for _ in range(_read_uint(stream)):
        key = deserialize_string(_read_exact(stream, _read_uint(stream)))
        columns[key] = _read_exact(stream, _read_uint(stream))
    return DynamicMap(columns)


def serialize_dyn_map(dyn_map: DynamicMap) -> bytes:
    """Encode a row: column count, then length-prefixed keys and values."""
    parts = [serialize_uint(dyn_map.column_count)]
    for key, value in dyn_map.items():
        key_bytes = serialize_string(key)
        parts.extend(
            (serialize_uint(len(key_bytes)), key_bytes, serialize_uint(len(value)), value)
        )
    return b"".join(parts)


def deserialize_dyn_map(data: bytes) -> tuple[DynamicMap, int]:
    """Decode a row from the start of data; return it and the bytes consumed."""
    stream = io.BytesIO(data)
    dyn_map = _read_dyn_map(stream)
    return dyn_map, stream.tell()


def serialize_msg(msg: Message) -> bytes:
    """Encode a message header followed by its rows."""
    client_id = serialize_string(msg.client_id)
    parts = [
        serialize_uint(int(msg.message_type) & _UINT32_MASK),
        serialize_uint(len(msg.rows)),
        serialize_uint(len(client_id)),
        client_id,
        serialize_uint(msg.message_id & _UINT32_MASK),
        serialize_uint(msg.row_id & _UINT32_MASK),
    ]
    parts.extend(serialize_dyn_map(row) for row in msg.rows)
    return b"".join(parts)


def _message_type(value: int) -> int:
    try:
        return MessageType(value)
    except ValueError:
        return value


def deserialize_msg(data: bytes) -> Message:
    """Decode a message; raises ValueError on truncated data."""
    stream = io.BytesIO(data)
    message_type = _read_uint(stream)
    row_count = _read_uint(stream)
    client_id = deserialize_string(_read_exact(stream, _read_uint(stream)))
    message_id = _read_uint(stream)
    row_id = _read_uint(stream) & _UINT16_MASK
    rows = [_read_dyn_map(stream) for _ in range(row_count)]
    return Message(
        message_type=_message_type(message_type),
        rows=rows,
        client_id=client_id,
        message_id=message_id,
        row_id=row_id,
    )


def _round_float32(value: float) -> float:
    return _FLOAT32.unpack(serialize_float(value))[0]


def _format_float32(value: float) -> str:
    """Format a float32 with the fewest digits that read back to it."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"

    digits = 9
    text = f"{value:.8e}"
    for digits in range(1, 10):
        text = f"{value:.{digits - 1}e}"
        if _round_float32(float(text)) == value:
            break

    mantissa, exponent_text = text.split("e")
    exponent = int(exponent_text)
    if -4 <= exponent < 6:
        decimals = max(digits - (exponent + 1), 0)
        return f"{float(text):.{decimals}f}"
    sign = "+" if exponent >= 0 else "-"
    return f"{mantissa}e{sign}{abs(exponent):02d}"


def serialize_to_string(dyn_map: DynamicMap) -> str:
    """Render a row as comma-separated key=value pairs ending in a newline."""
    pairs = []
    for key in dyn_map:
        if is_float_column(key):
            text = _format_float32(dyn_map.get_as_float(key))
        elif is_int_column(key):
            text = str(dyn_map.get_as_int(key))
        else:
            text = dyn_map.get_as_string(key)
        pairs.append(f"{key}{EQUALS_SEPARATOR}{text}")
    return COMMA_SEPARATOR.join(pairs) + NEW_LINE


def _parse_int(key: str, text: str) -> int:
    try:
        return int(text.strip("+"), 10) if text.strip() == text else int("x")
    except ValueError as exc:
        logger.error("Serializer | Error casting column %s to integer | %s", key, exc)
        return 0


def _parse_float(key: str, text: str) -> float:
    try:
        if text.strip() != text:
            raise ValueError(f"invalid float {text!r}")
        return float(text)
    except ValueError as exc:
        logger.error("Serializer | Error casting column %s to float | %s", key, exc)
        return 0.0


def deserialize_from_string(line: str) -> DynamicMap:
    """Parse comma-separated key=value pairs into a row.

    Raises ValueError for a pair without '='. Numeric columns that fail
    to parse are logged and stored as zero.
    """
    columns: dict[str, bytes] = {}
    for pair in line.split(COMMA_SEPARATOR):
        fields = pair.split(EQUALS_SEPARATOR)
        if len(fields) < 2:
            raise ValueError(f"missing '{EQUALS_SEPARATOR}' in pair {pair!r}")
        key, text = fields[0], fields[1]
        if is_int_column(key):
            columns[key] = serialize_uint(_parse_int(key, text) & _UINT32_MASK)
        elif is_float_column(key):
            columns[key] = serialize_float(_parse_float(key, text))
        else:
            columns[key] = serialize_string(text)
    return DynamicMap(columns)


def serialize_udp_packet(packet: UDPPacket) -> bytes:
    """Encode a packet as its type byte followed by its node id byte."""
    return bytes((int(packet.packet_type), int(packet.node_id)))


def deserialize_udp_packet(data: bytes) -> UDPPacket:
    """Decode a two-byte packet; raises ValueError if data is too short."""
    if len(data) < SIZE_UDP_PACKET:
        raise ValueError(
            f"udp packet needs {SIZE_UDP_PACKET} bytes, got {len(data)}"
        )
    try:
        packet_type: int = PacketType(data[0])
    except ValueError:
        packet_type = data[0]
    return UDPPacket(packet_type=packet_type, node_id=data[1])