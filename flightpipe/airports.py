"""Stores the airports each client sends, one CSV file per client."""

from __future__ import annotations

import logging
import math
import os
import struct
from collections.abc import Iterable
from decimal import Decimal
from typing import IO, Protocol

from flightpipe.columns import (
    AIRPORT_CODE,
    COMMA_SEPARATOR,
    CSV_SUFFIX,
    LATITUDE,
    LONGITUDE,
    NEW_LINE,
    TEMP_SUFFIX,
)
from flightpipe.serializer import DynamicMap, Message, MessageType

logger = logging.getLogger(__name__)

AIRPORTS_SAVER_ID = 0

_GO_EXPONENT_LIMIT = 21


class _Consumer(Protocol):
    def pop(self) -> Message | None: ...


class _Checkpointer(Protocol):
    def do_checkpoint(self, node_id: int) -> None: ...


def _to_float32(value: float) -> float:
    return struct.unpack(">f", struct.pack(">f", value))[0]


def format_float32(value: float) -> str:
    """Render a 32-bit float with the fewest digits that read back to it."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    target = _to_float32(value)
    text = repr(target)
    for precision in range(1, 10):
        candidate = f"{target:.{precision}g}"
        if _to_float32(float(candidate)) == target:
            text = candidate
            break
    number = Decimal(text)
    if number.is_zero():
        return "-0" if math.copysign(1.0, target) < 0 else "0"
    if -4 <= number.adjusted() < _GO_EXPONENT_LIMIT:
        return format(number.normalize(), "f")
    return text


def airports_file(base: str, client_id: str, *, temporary: bool = False) -> str:
    """Return the path of a client's airports file."""
    suffix = TEMP_SUFFIX if temporary else ""
    return f"{base}_{client_id}{suffix}{CSV_SUFFIX}"


class AirportSaver:
    """Writes airport coordinates to a temporary file per client.

    When the client's airports EOF arrives the file is closed and renamed
    to its final name, which tells the distance completers it is ready.
    """

    def __init__(
        self,
        consumer: _Consumer,
        airports_filename: str,
        *,
        checkpointer: _Checkpointer | None = None,
    ) -> None:
        self._consumer = consumer
        self.airports_filename = airports_filename
        self._checkpointer = checkpointer
        self._files: dict[str, IO[str]] = {}

    def save_airports(self) -> None:
        """Consume airport messages until the queue closes."""
        while True:
            msg = self._consumer.pop()
            if msg is None:
                logger.info("AirportsSaver | Closing...")
                for handle in self._files.values():
                    handle.close()
                self._files.clear()
                return
            logger.debug(
                "AirportsSaver | Received message | type: %s, rowCount: %s",
                msg.message_type,
                len(msg.rows),
            )
            if msg.message_type == MessageType.EOF_AIRPORTS:
                self._handle_eof(msg)
            elif msg.message_type == MessageType.AIRPORTS:
                self._handle_airports(msg)
            else:
                logger.warning(
                    "AirportsSaver | Received Unknown Type of Message | Type was: %s",
                    msg.message_type,
                )
            self._checkpoint()

    def _open(self, client_id: str) -> IO[str]:
        handle = self._files.get(client_id)
        if handle is None:
            path = airports_file(self.airports_filename, client_id, temporary=True)
            handle = open(path, "a", encoding="utf-8")
            self._files[client_id] = handle
        return handle

    def _handle_airports(self, msg: Message) -> None:
        try:
            handle = self._open(msg.client_id)
            handle.write(self._lines(msg.rows))
            handle.flush()
        except OSError as exc:
            logger.error("AirportsSaver | Error trying to save airports | %s", exc)

    def _handle_eof(self, msg: Message) -> None:
        logger.info("AirportsSaver | Received EOF. Marking file as done...")
        handle = self._files.pop(msg.client_id, None)
        if handle is None:
            logger.error(
                "AirportsSaver | Error marking file as done | file does not exist for %s",
                msg.client_id,
            )
            return
        try:
            handle.close()
            os.replace(
                airports_file(self.airports_filename, msg.client_id, temporary=True),
                airports_file(self.airports_filename, msg.client_id),
            )
        except OSError as exc:
            logger.error("AirportsSaver | Error marking file as done | %s", exc)
            return
        logger.info("AirportsSaver | Marked file for client id %s as finished", msg.client_id)

    @staticmethod
    def _lines(rows: Iterable[DynamicMap]) -> str:
        lines = []
        for row in rows:
            try:
                code = row.get_as_string(AIRPORT_CODE)
                lat = row.get_as_float(LATITUDE)
                lon = row.get_as_float(LONGITUDE)
            except (KeyError, ValueError) as exc:
                logger.error("AirportsSaver | Invalid airport row | %s | Skipping row...", exc)
                continue
            fields = (code, format_float32(lat), format_float32(lon))
            lines.append(COMMA_SEPARATOR.join(fields) + NEW_LINE)
        return "".join(lines)

    def _checkpoint(self) -> None:
        if self._checkpointer is None:
            return
        try:
            self._checkpointer.do_checkpoint(AIRPORTS_SAVER_ID)
        except Exception as exc:  # noqa: BLE001 - checkpoint failures are logged
            logger.error("AirportsSaver | Error on checkpointing | %s", exc)