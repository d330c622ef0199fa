"""First pipeline stage: trims flight rows and derives stopovers and route."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Protocol

from flightpipe.columns import (
    DESTINATION_AIRPORT,
    DOUBLE_PIPE_SEPARATOR,
    LEG_ID,
    ROUTE,
    SEGMENTS_AIRLINE_NAME,
    SEGMENTS_ARRIVAL_AIRPORT_CODE,
    STARTING_AIRPORT,
    TOTAL_FARE,
    TOTAL_STOPOVERS,
    TOTAL_TRAVEL_DISTANCE,
    TRAVEL_DURATION,
)
from flightpipe.eof import handle_eof
from flightpipe.serializer import (
    DynamicMap,
    Message,
    MessageType,
    serialize_string,
    serialize_uint,
)

logger = logging.getLogger(__name__)

EX123_COLUMNS = (
    LEG_ID,
    STARTING_AIRPORT,
    DESTINATION_AIRPORT,
    TRAVEL_DURATION,
    TOTAL_FARE,
    TOTAL_TRAVEL_DISTANCE,
    SEGMENTS_AIRLINE_NAME,
    TOTAL_STOPOVERS,
    ROUTE,
)
EX4_COLUMNS = (STARTING_AIRPORT, DESTINATION_AIRPORT, TOTAL_FARE)

_DESTINATION_AIRPORT_SEGMENTS = 1


class _Consumer(Protocol):
    def pop(self) -> Message | None: ...


class _Producer(Protocol):
    def send(self, msg: Message) -> None: ...


class _Checkpointer(Protocol):
    def do_checkpoint(self, node_id: int) -> None: ...


class DataProcessor:
    """Removes columns from raw flight rows and adds the auxiliary ones.

    Rows for exercises 1, 2 and 3 gain a stopover count and a route and go
    to every ex123 producer; rows for exercise 4 keep only a few columns.
    """

    def __init__(
        self,
        processor_id: int,
        consumer: _Consumer,
        producers_ex123: Sequence[_Producer],
        producer_ex4: _Producer,
        input_producer: _Producer,
        *,
        service_id: str = "",
        total_eof_nodes: int = 1,
        checkpointer: _Checkpointer | None = None,
        ex123_columns: Iterable[str] = EX123_COLUMNS,
        ex4_columns: Iterable[str] = EX4_COLUMNS,
    ) -> None:
        self.processor_id = processor_id
        self._consumer = consumer
        self._producers_ex123 = list(producers_ex123)
        self._producer_ex4 = producer_ex4
        self._input_producer = input_producer
        self._all_producers = [*self._producers_ex123, producer_ex4]
        self.service_id = service_id
        self.total_eof_nodes = total_eof_nodes
        self._checkpointer = checkpointer
        self.ex123_columns = list(ex123_columns)
        self.ex4_columns = list(ex4_columns)

    @property
    def node_name(self) -> str:
        return f"{self.service_id}-{self.processor_id}"

    def process_data(self) -> None:
        """Consume messages until the queue closes, forwarding processed rows."""
        while True:
            msg = self._consumer.pop()
            if msg is None:
                logger.info("DataProcessor %s | Closing...", self.processor_id)
                return
            if msg.message_type == MessageType.EOF_FLIGHT_ROWS:
                logger.info("DataProcessor %s | Received EOF. Handling...", self.processor_id)
                self._handle_eof(msg)
            elif msg.message_type == MessageType.FLIGHT_ROWS:
                ex123_rows, ex4_rows = self.process_rows(msg.rows)
                self._send_ex123(msg.with_rows(ex123_rows))
                self._send(self._producer_ex4, msg.with_rows(ex4_rows), "4")
            else:
                logger.warning(
                    "DataProcessor %s | Received unknown type of message. Skipping it...",
                    self.processor_id,
                )
            self._checkpoint()

    def _handle_eof(self, msg: Message) -> None:
        try:
            handle_eof(
                msg,
                self._input_producer,
                self._all_producers,
                self.node_name,
                self.total_eof_nodes,
            )
        except Exception as exc:  # noqa: BLE001 - a bad EOF must not stop the loop
            logger.error("DataProcessor %s | Error handling EOF | %s", self.processor_id, exc)

    def _send(self, producer: _Producer, msg: Message, exercise: str) -> None:
        try:
            producer.send(msg)
        except Exception as exc:  # noqa: BLE001 - keep consuming on a failed send
            logger.error(
                "DataProcessor %s | Error sending rows to exercise %s | %s",
                self.processor_id,
                exercise,
                exc,
            )

    def _send_ex123(self, msg: Message) -> None:
        for producer in self._producers_ex123:
            self._send(producer, msg, "1,2,3")

    def _checkpoint(self) -> None:
        if self._checkpointer is None:
            return
        try:
            self._checkpointer.do_checkpoint(self.processor_id)
        except Exception as exc:  # noqa: BLE001 - checkpoint failures are logged
            logger.error("DataProcessor #%s | Error on checkpointing | %s", self.processor_id, exc)

    def process_rows(
        self, rows: Iterable[DynamicMap]
    ) -> tuple[list[DynamicMap], list[DynamicMap]]:
        """Return the rows for exercises 1-3 and for exercise 4; bad rows are skipped."""
        ex123_rows: list[DynamicMap] = []
        ex4_rows: list[DynamicMap] = []
        for row in rows:
            try:
                ex123_row = self.process_ex123_row(row)
            except (KeyError, ValueError) as exc:
                logger.error(
                    "DataProcessor %s | action: reduce_columns_ex123 | result: fail | %s",
                    self.processor_id,
                    exc,
                )
                continue
            ex123_rows.append(ex123_row)
            try:
                ex4_rows.append(self.process_ex4_row(ex123_row))
            except (KeyError, ValueError) as exc:
                logger.error(
                    "DataProcessor %s | action: reduce_columns_ex4 | result: fail | %s",
                    self.processor_id,
                    exc,
                )
        return ex123_rows, ex4_rows

    def process_ex123_row(self, row: DynamicMap) -> DynamicMap:
        """Add stopovers and route to the row and keep the ex123 columns.

        Raises KeyError if a needed column is missing.
        """
        segments = row.get_as_string(SEGMENTS_ARRIVAL_AIRPORT_CODE)
        starting_airport = row.get_as_string(STARTING_AIRPORT)
        segment_count = len(segments.split(DOUBLE_PIPE_SEPARATOR))
        stopovers = (segment_count - _DESTINATION_AIRPORT_SEGMENTS) & 0xFFFFFFFF
        row.add_column(TOTAL_STOPOVERS, serialize_uint(stopovers))
        route = f"{starting_airport}{DOUBLE_PIPE_SEPARATOR}{segments}"
        row.add_column(ROUTE, serialize_string(route))
        return row.reduce_to_columns(self.ex123_columns)

    def process_ex4_row(self, row: DynamicMap) -> DynamicMap:
        """Keep only the ex4 columns; raises KeyError if one is missing."""
        return row.reduce_to_columns(self.ex4_columns)