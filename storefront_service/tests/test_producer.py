"""Unit tests for the OrderEventProducer class."""

import uuid
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from confluent_kafka import KafkaException

from storefront_service.producer import OrderEventProducer
from storefront_service.schemas import OrderPaidEvent


@pytest.fixture
def paid_event():
    """Create a sample order paid event."""
    return OrderPaidEvent(order_id=uuid.uuid4(), total_amount=Decimal("999.99"))


@pytest.fixture
def test_producer():
    """Create a producer whose Kafka client is a mock."""
    with patch("storefront_service.producer.Producer"):
        yield OrderEventProducer("localhost:9092", topic="orders.paid")


def test_producer_initialization():
    """Test that OrderEventProducer initializes with correct configuration.

    Verifies that the Kafka producer is created with keyed, idempotent
    delivery settings.
    """
    mock_producer_instance = MagicMock()
    mock_producer_class = MagicMock(return_value=mock_producer_instance)

    with patch("storefront_service.producer.Producer", new=mock_producer_class):
        producer = OrderEventProducer("dump:9092")

        mock_producer_class.assert_called_once_with(
            {
                "bootstrap.servers": "dump:9092",
                "client.id": "storefront",
                "acks": "all",
                "enable.idempotence": True,
                "message.timeout.ms": 5000,
                "partitioner": "consistent_random",
            }
        )
        assert producer._producer == mock_producer_instance
        assert producer.topic == "orders.paid"


def test_publish_order_paid_success(test_producer, paid_event):
    """Test that the event is keyed by order id and serialized as JSON."""
    with patch.object(test_producer, "_producer") as mock_producer:
        assert test_producer.publish_order_paid(paid_event) is True

        mock_producer.produce.assert_called_once_with(
            topic="orders.paid",
            key=str(paid_event.order_id).encode("utf-8"),
            value=paid_event.model_dump_json(),
            on_delivery=test_producer._delivery_callback,
        )
        mock_producer.poll.assert_called_once_with(0)


def test_published_payload_round_trips(test_producer, paid_event):
    with patch.object(test_producer, "_producer") as mock_producer:
        test_producer.publish_order_paid(paid_event)

    value = mock_producer.produce.call_args.kwargs["value"]
    assert OrderPaidEvent.model_validate_json(value) == paid_event


def test_publish_retries_after_flushing_full_buffer(test_producer, paid_event):
    with patch.object(test_producer, "_producer") as mock_producer:
        mock_producer.produce.side_effect = [BufferError("queue full"), None]

        assert test_producer.publish_order_paid(paid_event) is True
        mock_producer.flush.assert_called_once()
        assert mock_producer.produce.call_count == 2
        assert mock_producer.produce.call_args.kwargs["key"] == paid_event.key
        mock_producer.poll.assert_called_once_with(0)


def test_publish_buffer_still_full_does_not_raise(test_producer, paid_event):
    with patch.object(test_producer, "_producer") as mock_producer:
        mock_producer.produce.side_effect = BufferError("queue full")

        assert test_producer.publish_order_paid(paid_event) is False
        mock_producer.flush.assert_called_once()
        assert mock_producer.produce.call_count == 2


def test_publish_broker_failure_does_not_raise(test_producer, paid_event):
    with patch.object(test_producer, "_producer") as mock_producer:
        mock_producer.produce.side_effect = KafkaException("broker down")

        assert test_producer.publish_order_paid(paid_event) is False


def test_delivery_callback_handles_both_outcomes(test_producer):
    msg = MagicMock()
    msg.key.return_value = b"order-1"
    msg.topic.return_value = "orders.paid"

    test_producer._delivery_callback(None, msg)
    test_producer._delivery_callback("timed out", msg)


def test_delivery_failure_logs_decoded_key(test_producer, mocker):
    mock_logger = mocker.patch("storefront_service.producer.logger")
    msg = MagicMock()
    msg.key.return_value = b"order-1"

    test_producer._delivery_callback("timed out", msg)

    assert mock_logger.error.call_args.args[0] == "Failed to publish OrderPaidEvent for order order-1: timed out"


def test_flush_reports_pending_messages(test_producer):
    with patch.object(test_producer, "_producer") as mock_producer:
        mock_producer.flush.return_value = 2
        test_producer.flush(timeout=1.0)
        mock_producer.flush.assert_called_once_with(1.0)
