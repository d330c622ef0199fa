"""Propagation of end-of-file markers among the replicas of a stage."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from flightpipe.columns import COMMA_SEPARATOR, NODES_VISITED
from flightpipe.serializer import DynamicMap, Message, MessageType, serialize_string

logger = logging.getLogger(__name__)

_UINT16_MASK = 0xFFFF


class _Producer(Protocol):
    def send(self, msg: Message) -> None: ...


def _eof_message(message: Message, nodes: str, row_id: int) -> Message:
    return Message(
        message_type=MessageType.EOF_FLIGHT_ROWS,
        rows=[DynamicMap({NODES_VISITED: serialize_string(nodes)})],
        client_id=message.client_id,
        message_id=message.message_id,
        row_id=row_id & _UINT16_MASK,
    )


def handle_eof(
    message: Message,
    input_producer: _Producer,
    output_producers: Sequence[_Producer],
    node_id: str,
    eof_quantity: int,
) -> None:
    """Record this node on the EOF and forward it.

    Once every node of the stage has seen the EOF it goes to each output
    producer; until then it is put back on the stage's own input queue.
    Raises ValueError if the message is not an EOF, KeyError if it lacks
    the visited-nodes column.
    """
    if message.message_type != MessageType.EOF_FLIGHT_ROWS:
        raise ValueError("type is not EOF")

    try:
        nodes = message.rows[0].get_as_string(NODES_VISITED)
    except (KeyError, IndexError) as exc:
        logger.error("EOFHandler %s | Error getting nodes visited | %s", node_id, exc)
        raise

    if node_id not in nodes.split(COMMA_SEPARATOR):
        nodes = f"{nodes}{COMMA_SEPARATOR}{node_id}" if nodes else node_id

    if len(nodes.split(COMMA_SEPARATOR)) == eof_quantity:
        logger.info("EOF Handler %s | Sending EOF to next services...", node_id)
        for idx, producer in enumerate(output_producers):
            producer.send(_eof_message(message, "", idx))
        return

    logger.info("EOF Handler %s | Enqueueing EOF again...", node_id)
    input_producer.send(_eof_message(message, nodes, message.row_id + 1))