"""Pipeline stage that drops every column of a row except the configured ones."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

from flightpipe.eof import handle_eof
from flightpipe.serializer import DynamicMap, Message, MessageType

logger = logging.getLogger(__name__)


class _Consumer(Protocol):
    def pop(self) -> Message | None: ...


class _Producer(Protocol):
    def send(self, msg: Message) -> None: ...


class _Checkpointer(Protocol):
    def do_checkpoint(self, node_id: int) -> None: ...


class Reducer:
    """Reduces the dimensions of flight rows and passes them on."""

    def __init__(
        self,
        reducer_id: int,
        consumer: _Consumer,
        producer: _Producer,
        input_producer: _Producer,
        columns_to_keep: Iterable[str],
        *,
        service_id: str = "",
        total_eof_nodes: int = 1,
        checkpointer: _Checkpointer | None = None,
    ) -> None:
        self.reducer_id = reducer_id
        self._consumer = consumer
        self._producer = producer
        self._input_producer = input_producer
        self.columns_to_keep = list(columns_to_keep)
        self.service_id = service_id
        self.total_eof_nodes = total_eof_nodes
        self._checkpointer = checkpointer

    @property
    def node_name(self) -> str:
        return f"{self.service_id}-{self.reducer_id}"

    def reduce_dims(self) -> None:
        """Consume messages until the queue closes, forwarding reduced rows."""
        logger.info("DimReducer %s | Started", self.reducer_id)
        while True:
            msg = self._consumer.pop()
            if msg is None:
                logger.info("DimReducer %s | Closing...", self.reducer_id)
                return
            if msg.message_type == MessageType.EOF_FLIGHT_ROWS:
                logger.info("DimReducer %s | Received EOF. Now handling...", self.reducer_id)
                try:
                    handle_eof(
                        msg,
                        self._input_producer,
                        [self._producer],
                        self.node_name,
                        self.total_eof_nodes,
                    )
                except Exception as exc:  # noqa: BLE001 - a bad EOF must not stop the loop
                    logger.error("DimReducer %s | Error handling EOF: %s", self.reducer_id, exc)
            elif msg.message_type == MessageType.FLIGHT_ROWS:
                self._handle_flight_rows(msg)
            else:
                logger.warning(
                    "DimReducer %s | Received unknown type message. Skipping it...",
                    self.reducer_id,
                )
            self._checkpoint()

    def _reduce(self, rows: Iterable[DynamicMap]) -> list[DynamicMap]:
        reduced = []
        for row in rows:
            try:
                reduced.append(row.reduce_to_columns(self.columns_to_keep))
            except KeyError as exc:
                logger.error(
                    "DimReducer %s | Error reducing column, skipping row | %s",
                    self.reducer_id,
                    exc,
                )
        return reduced

    def _handle_flight_rows(self, msg: Message) -> None:
        try:
            self._producer.send(msg.with_rows(self._reduce(msg.rows)))
        except Exception as exc:  # noqa: BLE001 - keep consuming on a failed send
            logger.error(
                "DimReducer %s | Error trying to send message to output queue | %s",
                self.reducer_id,
                exc,
            )

    def _checkpoint(self) -> None:
        if self._checkpointer is None:
            return
        try:
            self._checkpointer.do_checkpoint(self.reducer_id)
        except Exception as exc:  # noqa: BLE001 - checkpoint failures are logged
            logger.error("DimReducer #%s | Error on checkpointing | %s", self.reducer_id, exc)