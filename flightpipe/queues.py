"""Protocol-level queue handlers that carry Message objects over raw byte queues."""

from __future__ import annotations

import logging
import os
import queue
from collections.abc import Mapping
from typing import Protocol

from flightpipe.columns import EQUALS_SEPARATOR, NEW_LINE
from flightpipe.serializer import Message, MessageType, deserialize_msg, serialize_msg

logger = logging.getLogger(__name__)


class DuplicateDetector(Protocol):
    """Remembers which messages were already seen and checkpoints that memory."""

    def is_duplicate(self, msg: Message) -> bool: ...

    def save_message_seen(self, msg: Message) -> None: ...

    def do_checkpoint(self, checkpoint_id: int) -> None: ...

    def commit(self) -> None: ...

    def abort(self) -> None: ...

    def restore_checkpoint(self, checkpoint: int) -> None: ...

    def checkpoint_versions(self) -> tuple[int, int]: ...


class _RawConsumer(Protocol):
    def pop(self) -> bytes | None: ...

    def signal_finished_message(self, processed_correctly: bool) -> None: ...


class _RawProducer(Protocol):
    def send(self, data: bytes) -> None: ...


def _is_flight_rows(msg: Message) -> bool:
    return msg.message_type == MessageType.FLIGHT_ROWS


class ProducerQueueProtocolHandler:
    """Serializes messages and hands the bytes to a raw producer."""

    def __init__(self, producer: _RawProducer) -> None:
        self._producer = producer

    def send(self, msg: Message) -> None:
        self._producer.send(serialize_msg(msg))


class ConsumerQueueProtocolHandler:
    """Pops messages from a raw consumer, dropping duplicates and counting rows.

    Each pop first acknowledges (or rejects) the previous message according
    to the status set with set_status_of_last_message.
    """

    def __init__(self, consumer: _RawConsumer, duplicates: DuplicateDetector) -> None:
        self._consumer = consumer
        self._duplicates = duplicates
        self._status = True
        self._last_msg: Message | None = None
        self._consumed_by_client: dict[str, int] = {}

    def pop(self) -> Message | None:
        """Return the next non-duplicate message, or None once the queue is closed."""
        while True:
            try:
                self._notify_status_of_last_message()
            except Exception as exc:  # noqa: BLE001 - failure to ack must not stop consumption
                logger.error(
                    "ConsumerQueueProtocolHandler | Error notifying status of last message | %s",
                    exc,
                )
            data = self._consumer.pop()
            if data is None:
                return None
            msg = deserialize_msg(data)
            self._last_msg = msg
            if not self._duplicates.is_duplicate(msg):
                break
            logger.warning(
                "ConsumerQueueProtocolHandler | Got Duplicated Message: %s-%s-%s | Discarding it...",
                msg.client_id,
                msg.message_id,
                msg.row_id,
            )
        if _is_flight_rows(msg):
            self._consumed_by_client[msg.client_id] = (
                self._consumed_by_client.get(msg.client_id, 0) + len(msg.rows)
            )
        self._duplicates.save_message_seen(msg)
        return msg

    def _notify_status_of_last_message(self) -> None:
        self._consumer.signal_finished_message(self._status)
        last = self._last_msg
        if last is not None and _is_flight_rows(last) and not self._status:
            self._consumed_by_client[last.client_id] = (
                self._consumed_by_client.get(last.client_id, 0) - len(last.rows)
            )
        self._status = True

    def received_messages(self, client_id: str) -> int:
        """Return how many flight rows were consumed for the client."""
        try:
            return self._consumed_by_client[client_id]
        except KeyError:
            logger.warning(
                "ConsumerQueueProtocolHandler | Client with id %s not found. Returning 0.",
                client_id,
            )
            return 0

    def clear_data(self, client_id: str) -> None:
        self._consumed_by_client.pop(client_id, None)

    def set_status_of_last_message(self, status: bool) -> None:
        """Mark the last message as processed (True) or to be requeued (False)."""
        self._status = status

    def do_checkpoint(self, checkpoint_id: int) -> None:
        self._duplicates.do_checkpoint(checkpoint_id)

    def commit(self) -> None:
        self._duplicates.commit()

    def abort(self) -> None:
        self._duplicates.abort()

    def restore_checkpoint(self, checkpoint: int) -> None:
        self._duplicates.restore_checkpoint(checkpoint)

    def checkpoint_versions(self) -> tuple[int, int]:
        return self._duplicates.checkpoint_versions()


class ChannelConsumer:
    """Consumes messages from an in-process queue; putting None closes it."""

    def __init__(self, channel: "queue.Queue[Message | None]") -> None:
        self._channel = channel
        self._closed = False
        self._received_by_client: dict[str, int] = {}
        self.last_status = True

    def pop(self) -> Message | None:
        if self._closed:
            return None
        msg = self._channel.get()
        if msg is None:
            self._closed = True
            return None
        if _is_flight_rows(msg):
            self._received_by_client[msg.client_id] = (
                self._received_by_client.get(msg.client_id, 0) + len(msg.rows)
            )
        return msg

    def received_messages(self, client_id: str) -> int:
        try:
            return self._received_by_client[client_id]
        except KeyError:
            logger.warning(
                "ConsumerChannel | Client Id not found. Returning 0 for received messages."
            )
            return 0

    def clear_data(self, client_id: str) -> None:
        self._received_by_client.pop(client_id, None)

    def set_status_of_last_message(self, status: bool) -> None:
        """Record the status; in-process channels have nothing to acknowledge."""
        self.last_status = status


class ChannelProducer:
    """Sends messages into an in-process queue."""

    def __init__(self, channel: "queue.Queue[Message | None]") -> None:
        self._channel = channel

    def send(self, msg: Message) -> None:
        self._channel.put(msg)


class QueueCheckpointWriter:
    """Renders per-client counters as checkpoint lines."""

    def __init__(self, data: Mapping[str, int]) -> None:
        self._data = data

    def checkpoint_string(self) -> str:
        return "".join(
            f"{client_id}{EQUALS_SEPARATOR}{total}{NEW_LINE}"
            for client_id, total in self._data.items()
        )


def read_checkpoint_state(path: str | os.PathLike[str]) -> dict[str, int]:
    """Read per-client counters from a checkpoint file, skipping its header line.

    A missing file yields an empty mapping. Counters that are not integers
    are logged and restored as zero.
    """
    state: dict[str, int] = {}
    if not os.path.exists(path):
        logger.info("ProtocolRecover | Does not have a checkpoint: %s", path)
        return state
    logger.info("ProtocolRecover | Restoring checkpoint: %s", path)
    with open(path, encoding="utf-8") as checkpoint:
        next(checkpoint, None)
        for line in checkpoint:
            line = line.removesuffix(NEW_LINE)
            fields = line.split(EQUALS_SEPARATOR)
            if len(fields) < 2:
                raise ValueError(f"malformed checkpoint line in {path}: {line!r}")
            client_id, text = fields[0], fields[1]
            try:
                sent = int(text)
            except ValueError as exc:
                logger.error(
                    "ProtocolRecover | On Checkpointing %s | Error converting sent to int | %s",
                    path,
                    exc,
                )
                sent = 0
            state[client_id] = sent
    logger.info("ProtocolRecover | Restored checkpoint: %s | State: %s", path, state)
    return state