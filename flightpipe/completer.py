"""Pipeline stage that fills in total travel and direct distances of flights."""

from __future__ import annotations

import logging
import os
import struct
from dataclasses import dataclass
from typing import Protocol

from flightpipe.airports import airports_file
from flightpipe.columns import (
    COMMA_SEPARATOR,
    DESTINATION_AIRPORT,
    DIRECT_DISTANCE,
    DOUBLE_PIPE_SEPARATOR,
    ROUTE,
    STARTING_AIRPORT,
    TOTAL_TRAVEL_DISTANCE,
)
from flightpipe.distance import calculate_distance_from
from flightpipe.eof import handle_eof
from flightpipe.serializer import DynamicMap, Message, MessageType, serialize_float

logger = logging.getLogger(__name__)

Coordinates = tuple[float, float]


class _Consumer(Protocol):
    def pop(self) -> Message | None: ...

    def set_status_of_last_message(self, status: bool) -> None: ...


class _Producer(Protocol):
    def send(self, msg: Message) -> None: ...


class _Checkpointer(Protocol):
    def do_checkpoint(self, node_id: int) -> None: ...


class RouteError(LookupError):
    """Raised when a row names an airport that is not known for its client."""


@dataclass(frozen=True)
class CompleterSettings:
    """Settings shared by the distance completers of one service."""

    service_id: str = ""
    airports_filename: str = "airports"
    total_eof_nodes: int = 1


def _to_float32(value: float) -> float:
    return struct.unpack(">f", struct.pack(">f", value))[0]


class DistanceCompleter:
    """Completes missing total travel distances and adds direct distances."""

    def __init__(
        self,
        completer_id: int,
        consumer: _Consumer,
        producer: _Producer,
        input_producer: _Producer,
        settings: CompleterSettings,
        *,
        checkpointer: _Checkpointer | None = None,
        airports: dict[str, dict[str, Coordinates]] | None = None,
    ) -> None:
        self.completer_id = completer_id
        self._consumer = consumer
        self._producer = producer
        self._input_producer = input_producer
        self.settings = settings
        self._checkpointer = checkpointer
        self._airports: dict[str, dict[str, Coordinates]] = (
            airports if airports is not None else {}
        )

    @property
    def node_name(self) -> str:
        return f"{self.settings.service_id}-{self.completer_id}"

    def complete_distances(self) -> None:
        """Consume messages until the queue closes, forwarding completed rows."""
        while True:
            msg = self._consumer.pop()
            if msg is None:
                logger.info("DistanceCompleter %s | Closing...", self.completer_id)
                return
            if msg.message_type == MessageType.EOF_FLIGHT_ROWS:
                logger.info("DistanceCompleter %s | Received EOF. Handling...", self.completer_id)
                try:
                    handle_eof(
                        msg,
                        self._input_producer,
                        [self._producer],
                        self.node_name,
                        self.settings.total_eof_nodes,
                    )
                except Exception as exc:  # noqa: BLE001 - a bad EOF must not stop the loop
                    logger.error(
                        "DistanceCompleter %s | Error handling EOF | %s", self.completer_id, exc
                    )
                self._airports.pop(msg.client_id, None)
            elif msg.message_type == MessageType.FLIGHT_ROWS:
                self._handle_flight_rows(msg)
            else:
                logger.warning(
                    "DistanceCompleter %s | Unknown type of message: %s. Skipping it...",
                    self.completer_id,
                    msg.message_type,
                )
            self._checkpoint()

    def load_airports(self, client_id: str) -> dict[str, Coordinates]:
        """Load the client's finished airports file into memory and return it.

        A file that cannot be opened leaves the client without airports.
        Raises ValueError on a malformed line.
        """
        path = airports_file(self.settings.airports_filename, client_id)
        try:
            handle = open(path, encoding="utf-8")
        except OSError as exc:
            logger.error(
                "DistanceCompleter %s | Error trying to read the airports | %s",
                self.completer_id,
                exc,
            )
            return {}
        airports: dict[str, Coordinates] = {}
        with handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                fields = line.split(COMMA_SEPARATOR)
                if len(fields) < 3:
                    raise ValueError(f"malformed airport line in {path}: {line!r}")
                airports[fields[0]] = (
                    _to_float32(float(fields[1])),
                    _to_float32(float(fields[2])),
                )
        self._airports[client_id] = airports
        return airports

    def _check_for_airports(self, client_id: str) -> bool:
        if client_id in self._airports:
            return True
        path = airports_file(self.settings.airports_filename, client_id)
        if os.path.exists(path):
            self.load_airports(client_id)
            return True
        return False

    def _lookup(self, client_id: str, code: str) -> Coordinates:
        try:
            return self._airports.get(client_id, {})[code]
        except KeyError:
            raise RouteError(f"unknown airport {code!r}") from None

    def _direct_distance(self, row: DynamicMap, client_id: str) -> float:
        endpoints = []
        for column in (STARTING_AIRPORT, DESTINATION_AIRPORT):
            try:
                code = row.get_as_string(column)
            except KeyError as exc:
                logger.error(
                    "DistanceCompleter %s | Error getting %s | %s",
                    self.completer_id,
                    column,
                    exc,
                )
                code = ""
            endpoints.append(self._lookup(client_id, code))
        return calculate_distance_from(endpoints[0], endpoints[1])

    def _total_travel_distance(self, row: DynamicMap, client_id: str) -> float:
        try:
            route = row.get_as_string(ROUTE)
        except KeyError as exc:
            logger.error("DistanceCompleter %s | Could not get the Route | %s", self.completer_id, exc)
            route = ""
        codes = route.split(DOUBLE_PIPE_SEPARATOR)
        total = 0.0
        for origin, destination in zip(codes, codes[1:]):
            total += calculate_distance_from(
                self._lookup(client_id, origin), self._lookup(client_id, destination)
            )
        return total

    def _complete_row(self, row: DynamicMap, client_id: str) -> DynamicMap:
        try:
            total = row.get_as_float(TOTAL_TRAVEL_DISTANCE)
        except (KeyError, ValueError):
            total = 0.0
        if total == 0:
            total = self._total_travel_distance(row, client_id)
            row.add_column(TOTAL_TRAVEL_DISTANCE, serialize_float(total))
        row.add_column(DIRECT_DISTANCE, serialize_float(self._direct_distance(row, client_id)))
        return row

    def _handle_flight_rows(self, msg: Message) -> None:
        if not self._check_for_airports(msg.client_id):
            self._consumer.set_status_of_last_message(False)
            return
        completed = []
        for row in msg.rows:
            try:
                completed.append(self._complete_row(row, msg.client_id))
            except RouteError as exc:
                logger.error(
                    "DistanceCompleter %s | Error completing row | %s | Skipping row...",
                    self.completer_id,
                    exc,
                )
        try:
            self._producer.send(msg.with_rows(completed))
        except Exception as exc:  # noqa: BLE001 - keep consuming on a failed send
            logger.error(
                "DistanceCompleter %s | Error trying to send to the next service | %s",
                self.completer_id,
                exc,
            )

    def _checkpoint(self) -> None:
        if self._checkpointer is None:
            return
        try:
            self._checkpointer.do_checkpoint(self.completer_id)
        except Exception as exc:  # noqa: BLE001 - checkpoint failures are logged
            logger.error(
                "DistanceCompleter #%s | Error on checkpointing | %s", self.completer_id, exc
            )