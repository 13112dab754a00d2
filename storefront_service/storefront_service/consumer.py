"""Kafka consumer feeding order paid events to the stock reconciler."""

import time
from collections.abc import Iterator
from typing import Optional

from confluent_kafka import Consumer, KafkaError, KafkaException, TopicPartition
from pydantic import ValidationError

from .exceptions import UnexpectedError
from .logger import kafka_logger as logger
from .models import SettlementOutcome
from .reconciler import StockReconciler
from .schemas import OrderPaidEvent

# Configuration constants
DEFAULT_CONSUMER_CONFIG = {
    "auto.offset.reset": "earliest",
    "enable.auto.commit": False,
    "session.timeout.ms": 30000,
    "max.poll.interval.ms": 300000,
}

STATUS_LOG_INTERVAL = 300  # seconds


class Acknowledgment:
    """Handle used to acknowledge one consumed message.

    Until ``acknowledge`` is called the message's offset is not committed,
    so the broker hands it out again after a restart or rebalance.
    """

    def __init__(self, consumer: Consumer, message):
        self._consumer = consumer
        self._message = message
        self.acknowledged = False

    def acknowledge(self) -> None:
        """Commit the message offset synchronously."""
        self._consumer.commit(message=self._message, asynchronous=False)
        self.acknowledged = True

    def redeliver(self, backoff: float = 0.0) -> None:
        """Rewind the partition so the same message is polled again."""
        if backoff:
            time.sleep(backoff)
        self._consumer.seek(
            TopicPartition(self._message.topic(), self._message.partition(), self._message.offset())
        )


class OrderPaidConsumer:
    """Consumer for the order paid topic."""

    def __init__(
        self,
        bootstrap_servers: str,
        group_id: str,
        topic: str = "orders.paid",
        auto_offset_reset: str = "earliest",
        redelivery_backoff: float = 1.0,
    ):
        """Initialize the order paid consumer.

        Args:
            bootstrap_servers: Kafka bootstrap servers
            group_id: Consumer group ID
            topic: Topic carrying order paid events
            auto_offset_reset: Where to start consuming from if no offset is stored
            redelivery_backoff: Seconds to wait before retrying a failed message
        """
        logger.info(
            f"Initializing consumer with bootstrap_servers={bootstrap_servers}, "
            f"group_id={group_id}, topic={topic}"
        )
        config = DEFAULT_CONSUMER_CONFIG.copy()
        config.update(
            {
                "bootstrap.servers": bootstrap_servers,
                "group.id": group_id,
                "auto.offset.reset": auto_offset_reset,
            }
        )
        self.consumer = Consumer(config)
        self.topic = topic
        self.redelivery_backoff = redelivery_backoff
        self.running = False
        self.stats = {
            "messages_processed": 0,
            "compensated": 0,
            "duplicates": 0,
            "errors": 0,
            "start_time": time.time(),
        }

    def subscribe(self) -> None:
        logger.info(f"Subscribing to topic: {self.topic}")
        self.consumer.subscribe([self.topic])

    def stream(self) -> Iterator[tuple[OrderPaidEvent, Acknowledgment]]:
        """Yield decoded events with their acknowledgment handles.

        Messages that cannot be decoded are logged and acknowledged; they
        would fail the same way on every redelivery.

        Broker errors are logged and polling continues; only fatal client
        errors end the stream.

        Raises:
            KafkaException: On a fatal Kafka client error.
        """
        last_status_log = time.time()

        while self.running:
            msg = self.consumer.poll(timeout=1.0)

            now = time.time()
            if now - last_status_log >= STATUS_LOG_INTERVAL:
                self._log_status()
                last_status_log = now

            if msg is None:
                continue

            if msg.error():
                if msg.error().code() == KafkaError._PARTITION_EOF:
                    logger.debug("Reached end of partition")
                    continue
                logger.error(f"Kafka error: {msg.error()}")
                self.stats["errors"] += 1
                if msg.error().fatal():
                    raise KafkaException(msg.error())
                continue

            logger.debug(
                f"Received message | topic={msg.topic()} | partition={msg.partition()} | offset={msg.offset()}"
            )
            ack = Acknowledgment(self.consumer, msg)
            try:
                event = OrderPaidEvent.model_validate_json(msg.value())
            except ValidationError as e:
                logger.error(f"Discarding undecodable message at offset {msg.offset()}: {e}")
                self.stats["errors"] += 1
                ack.acknowledge()
                continue

            yield event, ack

    def handle_event(
        self, event: OrderPaidEvent, ack: Acknowledgment, reconciler: StockReconciler
    ) -> Optional[SettlementOutcome]:
        """Settle one event and acknowledge it unless settlement must be retried.

        Returns:
            The settlement outcome, or None if the message will be redelivered
        """
        try:
            outcome = reconciler.handle_order_paid(event)
        except UnexpectedError as e:
            logger.error(f"Settlement of order {event.order_id} failed, will be redelivered: {e.message}")
            self.stats["errors"] += 1
            ack.redeliver(self.redelivery_backoff)
            return None
        except Exception as e:
            logger.opt(exception=e).error(f"Unexpected error settling order {event.order_id}: {e}")
            self.stats["errors"] += 1
            ack.redeliver(self.redelivery_backoff)
            return None

        ack.acknowledge()
        self.stats["messages_processed"] += 1
        if outcome == SettlementOutcome.COMPENSATED:
            self.stats["compensated"] += 1
        elif outcome == SettlementOutcome.DUPLICATE:
            self.stats["duplicates"] += 1
        return outcome

    def process_messages(self, reconciler: StockReconciler) -> None:
        """Process incoming messages until ``close`` is called.

        Args:
            reconciler: Settles the stock of each paid order
        """
        logger.info("Starting message processing loop")
        self.running = True
        try:
            for event, ack in self.stream():
                self.handle_event(event, ack, reconciler)
        except KeyboardInterrupt:
            logger.info("Shutting down consumer...")
        except KafkaException as e:
            logger.opt(exception=e).critical(f"Fatal Kafka error, consumer stopped: {e}")
        finally:
            self.running = False
            self._log_status()
            self.consumer.close()

    def _log_status(self) -> None:
        """Log consumer status and statistics."""
        runtime = time.time() - self.stats["start_time"]
        msg_rate = self.stats["messages_processed"] / runtime if runtime > 0 else 0

        logger.info(
            f"Consumer status | messages_processed={self.stats['messages_processed']} | "
            f"compensated={self.stats['compensated']} | duplicates={self.stats['duplicates']} | "
            f"errors={self.stats['errors']} | messages_per_second={msg_rate:.2f}"
        )

    def close(self) -> None:
        """Stop the processing loop; the loop closes the Kafka consumer."""
        self.running = False
        logger.info("Consumer stop requested")
