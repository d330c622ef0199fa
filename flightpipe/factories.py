"""Factories that build protocol-level producers and consumers on a middleware."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Protocol

from flightpipe.queues import (
    ConsumerQueueProtocolHandler,
    DuplicateDetector,
    ProducerQueueProtocolHandler,
)

DIRECT = "direct"
FANOUT = "fanout"
TOPIC = "topic"

DuplicatesFactory = Callable[[str], DuplicateDetector]


class _RawConsumer(Protocol):
    name: str

    def pop(self) -> bytes | None: ...

    def bind_to(self, exchange: str, routing_key: str, kind: str) -> None: ...

    def signal_finished_message(self, processed_correctly: bool) -> None: ...


class _RawProducer(Protocol):
    def send(self, data: bytes) -> None: ...


class _Middleware(Protocol):
    def create_consumer(self, name: str, durable: bool) -> _RawConsumer: ...

    def create_producer(self, name: str, durable: bool) -> _RawProducer: ...

    def create_exchange_producer(
        self, exchange: str, routing_key: str, kind: str, durable: bool
    ) -> _RawProducer: ...


class _QueueProtocolFactory:
    def __init__(self, middleware: _Middleware, duplicates: DuplicatesFactory) -> None:
        self._middleware = middleware
        self._duplicates = duplicates

    def _wrap_consumer(self, consumer: _RawConsumer) -> ConsumerQueueProtocolHandler:
        return ConsumerQueueProtocolHandler(consumer, self._duplicates(consumer.name))

    def _simple_consumer(self, name: str) -> ConsumerQueueProtocolHandler:
        return self._wrap_consumer(self._middleware.create_consumer(name, True))


class SimpleQueueFactory(_QueueProtocolFactory):
    """Producers and consumers on plain durable queues."""

    def create_producer(self, name: str) -> ProducerQueueProtocolHandler:
        return ProducerQueueProtocolHandler(self._middleware.create_producer(name, True))

    def create_consumer(self, name: str) -> ConsumerQueueProtocolHandler:
        return self._simple_consumer(name)


class FanoutExchangeQueueFactory(_QueueProtocolFactory):
    """Producers publish to a fanout exchange; consumer queues are bound to it."""

    def __init__(
        self,
        middleware: _Middleware,
        exchange: str,
        routing_key: str,
        duplicates: DuplicatesFactory,
    ) -> None:
        super().__init__(middleware, duplicates)
        self.exchange = exchange
        self.routing_key = routing_key

    def create_producer(self, name: str) -> ProducerQueueProtocolHandler:
        """Create a producer on the factory's exchange; the name is not used."""
        producer = self._middleware.create_exchange_producer(
            self.exchange, self.routing_key, FANOUT, True
        )
        return ProducerQueueProtocolHandler(producer)

    def create_consumer(self, name: str) -> ConsumerQueueProtocolHandler:
        consumer = self._middleware.create_consumer(name, True)
        consumer.bind_to(self.exchange, self.routing_key, FANOUT)
        return self._wrap_consumer(consumer)


class TopicFactory(_QueueProtocolFactory):
    """Producers publish to a topic exchange with the name as routing key."""

    def __init__(
        self,
        middleware: _Middleware,
        routing_keys: Iterable[str],
        exchange: str,
        duplicates: DuplicatesFactory,
    ) -> None:
        super().__init__(middleware, duplicates)
        self.routing_keys = list(routing_keys)
        self.exchange = exchange

    def create_producer(self, name: str) -> ProducerQueueProtocolHandler:
        producer = self._middleware.create_exchange_producer(
            self.exchange, name, TOPIC, True
        )
        return ProducerQueueProtocolHandler(producer)

    def create_consumer(self, name: str) -> ConsumerQueueProtocolHandler:
        consumer = self._middleware.create_consumer(name, True)
        for routing_key in self.routing_keys:
            consumer.bind_to(self.exchange, routing_key, TOPIC)
        return self._wrap_consumer(consumer)


class DirectExchangeConsumerFactory(_QueueProtocolFactory):
    """Each consumer gets its own queue bound to a direct exchange.

    Successive consumers use routing keys base, base + 1, and so on;
    producers are plain queue producers.
    """

    def __init__(
        self, middleware: _Middleware, routing_key: int, duplicates: DuplicatesFactory
    ) -> None:
        super().__init__(middleware, duplicates)
        self.routing_key = routing_key
        self._counter = 0

    def create_producer(self, name: str) -> ProducerQueueProtocolHandler:
        return ProducerQueueProtocolHandler(self._middleware.create_producer(name, True))

    def create_consumer(self, name: str) -> ConsumerQueueProtocolHandler:
        routing_key = self.routing_key + self._counter
        consumer = self._middleware.create_consumer(f"{name}-{routing_key}", True)
        consumer.bind_to(name, str(routing_key), DIRECT)
        self._counter += 1
        return self._wrap_consumer(consumer)


class DirectExchangeProducerFactory(_QueueProtocolFactory):
    """Each producer publishes to a direct exchange with the next routing key.

    Routing keys count up from zero; consumers are plain queue consumers.
    """

    def __init__(self, middleware: _Middleware, duplicates: DuplicatesFactory) -> None:
        super().__init__(middleware, duplicates)
        self._counter = 0

    def create_producer(self, name: str) -> ProducerQueueProtocolHandler:
        producer = self._middleware.create_exchange_producer(
            name, str(self._counter), DIRECT, True
        )
        self._counter += 1
        return ProducerQueueProtocolHandler(producer)

    def create_consumer(self, name: str) -> ConsumerQueueProtocolHandler:
        return self._simple_consumer(name)