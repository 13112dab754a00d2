"""Kafka producer for publishing order paid events."""

from confluent_kafka import KafkaException, Producer

from .logger import kafka_logger as logger
from .schemas import OrderPaidEvent


class OrderEventProducer:
    """Kafka producer for publishing order paid events.

    Events are keyed by order id, so every event of one order lands on the
    same partition and is consumed in the order it was published.

    Attributes:
        _producer: The underlying Kafka producer instance.
        topic: Topic the order paid events are published to.
    """

    def __init__(self, bootstrap_servers: str, topic: str = "orders.paid", client_id: str = "storefront"):
        """Initialize the Kafka producer with the given bootstrap servers.

        Args:
            bootstrap_servers (str): Comma-separated list of Kafka broker addresses.
            topic (str): Topic for order paid events.
            client_id (str): Producer client ID.
        """
        self.topic = topic
        self._producer = Producer(
            {
                "bootstrap.servers": bootstrap_servers,
                "client.id": client_id,
                "acks": "all",
                "enable.idempotence": True,
                "message.timeout.ms": 5000,
                "partitioner": "consistent_random",  # Same key → same partition
            }
        )

    def _delivery_callback(self, err, msg):
        """Callback function for message delivery reports.

        Args:
            err: Error that occurred during message delivery, if any.
            msg: Message that was delivered or failed.
        """
        if err:
            logger.error(f"Failed to publish OrderPaidEvent for order {msg.key().decode('utf-8')}: {err}")
        else:
            logger.info(
                f"OrderPaidEvent published for order {msg.key().decode('utf-8')} "
                f"[{msg.topic()} p:{msg.partition()} offset:{msg.offset()}]"
            )

    def publish_order_paid(self, event: OrderPaidEvent) -> bool:
        """Hand an order paid event to Kafka.

        Never raises: the order is already durably paid, so a publication
        failure only delays stock settlement and is logged.

        Args:
            event (OrderPaidEvent): The event to publish.

        Returns:
            bool: True if the event was queued for delivery.
        """
        logger.info(f"Publishing OrderPaidEvent for order: {event.order_id}")
        try:
            try:
                self._produce(event)
            except BufferError:
                logger.warning(f"Producer buffer full, flushing before retrying order {event.order_id}")
                self._producer.flush()
                self._produce(event)
            return True
        except BufferError:
            logger.error(f"Producer buffer still full, OrderPaidEvent for {event.order_id} not queued")
        except KafkaException as e:
            logger.error(f"Failed to publish OrderPaidEvent for order {event.order_id}: {e}")
        return False

    def _produce(self, event: OrderPaidEvent) -> None:
        self._producer.produce(
            topic=self.topic,
            key=event.key,
            value=event.model_dump_json(),
            on_delivery=self._delivery_callback,
        )
        self._producer.poll(0)  # Trigger delivery callbacks

    def flush(self, timeout: float = 10.0) -> None:
        """Wait for all messages to be delivered.

        Args:
            timeout: Maximum time to wait in seconds
        """
        remaining = self._producer.flush(timeout)
        if remaining > 0:
            logger.warning(f"{remaining} messages still pending delivery")

    def close(self) -> None:
        self.flush()
        logger.info("Producer closed")
