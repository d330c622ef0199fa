"""RabbitMQ queues and exchanges that carry raw bytes."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

import pika
from pika.exceptions import AMQPError

logger = logging.getLogger(__name__)

BINARY_DATA_MIME = "application/octet-stream"
TIMEOUT_SECONDS = 5
PERSISTENT_DELIVERY_MODE = 2


class MiddlewareError(Exception):
    """Raised when the broker refuses an operation."""


def _wrap(message: str, exc: Exception) -> MiddlewareError:
    return MiddlewareError(f"{message} | {exc}")


def _persistent_binary() -> pika.BasicProperties:
    return pika.BasicProperties(
        content_type=BINARY_DATA_MIME,
        delivery_mode=PERSISTENT_DELIVERY_MODE,
    )


def create_queue(channel: Any, name: str, durable: bool) -> str:
    """Declare a queue with a prefetch count of one and return its name."""
    try:
        frame = channel.queue_declare(
            queue=name, durable=durable, exclusive=False, auto_delete=False
        )
    except AMQPError as exc:
        raise _wrap("Failed to declare RabbitMQ Queue.", exc) from exc
    try:
        channel.basic_qos(prefetch_count=1, prefetch_size=0, global_qos=False)
    except AMQPError as exc:
        raise _wrap("Failed to declare Prefetch count to 1.", exc) from exc
    return frame.method.queue


class Consumer:
    """Pops bodies from a declared queue and acknowledges them by hand."""

    def __init__(self, channel: Any, name: str, durable: bool) -> None:
        self._channel = channel
        self.name = create_queue(channel, name, durable)
        try:
            self._messages: Iterator[Any] = iter(
                channel.consume(self.name, auto_ack=False, exclusive=False)
            )
        except AMQPError as exc:
            raise _wrap(
                "Failed to consume and create bytes channel in the RabbitMQ Queue.",
                exc,
            ) from exc
        self._last_delivery_tag: int | None = None

    def pop(self) -> bytes | None:
        """Return the next body, or None once the channel is closed."""
        try:
            method, _properties, body = next(self._messages)
        except StopIteration:
            self._last_delivery_tag = None
            return None
        except AMQPError as exc:
            logger.error("Consumer | Channel closed while consuming | %s", exc)
            self._last_delivery_tag = None
            return None
        self._last_delivery_tag = method.delivery_tag
        return body

    def bind_to(self, exchange: str, routing_key: str, kind: str) -> None:
        """Declare a durable exchange of the given kind and bind this queue to it."""
        try:
            self._channel.exchange_declare(
                exchange=exchange,
                exchange_type=kind,
                durable=True,
                auto_delete=False,
                internal=False,
            )
        except AMQPError as exc:
            raise _wrap(
                f"Failed to declare the Exchange {exchange} in RabbitMQ", exc
            ) from exc
        try:
            self._channel.queue_bind(
                queue=self.name, exchange=exchange, routing_key=routing_key
            )
        except AMQPError as exc:
            raise MiddlewareError(f"error binding queue to exchange: {exc}") from exc

    def signal_finished_message(self, processed_correctly: bool) -> None:
        """Ack the last message, or reject it back to the queue."""
        if self._last_delivery_tag is None:
            return
        try:
            if processed_correctly:
                self._channel.basic_ack(
                    delivery_tag=self._last_delivery_tag, multiple=False
                )
            else:
                self._channel.basic_reject(
                    delivery_tag=self._last_delivery_tag, requeue=True
                )
        except AMQPError as exc:
            logger.error("Consumer | Error trying to send ACK/NACK to RabbitMQ | %s", exc)
            raise _wrap("failed to send ACK/NACK", exc) from exc


class Producer:
    """Publishes persistent bodies straight into a declared queue."""

    def __init__(self, channel: Any, name: str, durable: bool) -> None:
        self._channel = channel
        self._queue = create_queue(channel, name, durable)
        self.name = name

    def send(self, data: bytes) -> None:
        try:
            self._channel.basic_publish(
                exchange="",
                routing_key=self._queue,
                body=data,
                properties=_persistent_binary(),
                mandatory=False,
            )
        except AMQPError as exc:
            raise MiddlewareError(f"failed to Publish content into queue: {exc}") from exc


class ExchangeProducer:
    """Publishes persistent bodies into an exchange with a fixed routing key."""

    def __init__(
        self, channel: Any, exchange: str, routing_key: str, kind: str, durable: bool
    ) -> None:
        try:
            channel.exchange_declare(
                exchange=exchange,
                exchange_type=kind,
                durable=durable,
                auto_delete=False,
                internal=False,
            )
        except AMQPError as exc:
            raise _wrap(
                f"Failed to declare the Exchange {exchange} in RabbitMQ", exc
            ) from exc
        logger.info("ExchangeProducer | Created new exchange %s in RabbitMQ", exchange)
        self._channel = channel
        self.name = exchange
        self.routing_key = routing_key

    def send(self, data: bytes) -> None:
        try:
            self._channel.basic_publish(
                exchange=self.name,
                routing_key=self.routing_key,
                body=data,
                properties=_persistent_binary(),
                mandatory=False,
            )
        except AMQPError as exc:
            raise MiddlewareError(
                f"failed to publish content into exchange: {exc}"
            ) from exc


class QueueMiddleware:
    """One broker connection and channel from which queues are made."""

    def __init__(self, address: str, *, connection: Any = None) -> None:
        if connection is None:
            logger.info("QueueMiddleware | Connecting to RabbitMQ")
            try:
                parameters = pika.URLParameters(address)
                parameters.blocked_connection_timeout = TIMEOUT_SECONDS
                connection = pika.BlockingConnection(parameters)
            except (AMQPError, OSError, ValueError) as exc:
                raise _wrap("Failed to connect via Dial to RabbitMQ.", exc) from exc
            logger.info("QueueMiddleware | Connected to RabbitMQ")
        self._connection = connection
        try:
            self._channel = connection.channel()
        except AMQPError as exc:
            raise _wrap("Failed to create RabbitMQ Channel.", exc) from exc
        logger.info("QueueMiddleware | Created RabbitMQ Channel")

    def create_consumer(self, name: str, durable: bool) -> Consumer:
        return Consumer(self._channel, name, durable)

    def create_producer(self, name: str, durable: bool) -> Producer:
        return Producer(self._channel, name, durable)

    def create_exchange_producer(
        self, exchange: str, routing_key: str, kind: str, durable: bool
    ) -> ExchangeProducer:
        return ExchangeProducer(self._channel, exchange, routing_key, kind, durable)

    def close(self) -> None:
        """Close the channel and the connection, logging any failure."""
        try:
            self._channel.close()
        except AMQPError as exc:
            logger.error("QueueMiddleware | Error closing QueueMiddleware Channel | %s", exc)
        try:
            self._connection.close()
        except AMQPError as exc:
            logger.error(
                "QueueMiddleware | Error closing QueueMiddleware Connection | %s", exc
            )

    def __enter__(self) -> QueueMiddleware:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()