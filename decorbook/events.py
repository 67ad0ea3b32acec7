import os
import json
import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)

# Reuse AWS client across invocations
_sqs_client = None


def _encode(event_type: str, payload: Dict[str, Any]) -> str:
    return json.dumps({"type": event_type, "payload": payload}, default=str)


def publish(event_type: str, payload: Dict[str, Any], *, safe: bool = True) -> None:
    """
    Publish a domain event to the configured backend.

    EVENT_BACKEND: rabbitmq | sqs | none
    safe=True: log and swallow failures. Request paths publish after their
    own commit, so a broker outage must not turn a success into an error.
    """
    backend = os.getenv("EVENT_BACKEND", "rabbitmq").strip().lower()

    try:
        if backend == "none":
            logger.debug("event %s not published (EVENT_BACKEND=none)", event_type)
            return

        if backend == "rabbitmq":
            _publish_rabbitmq(event_type, payload)
            return

        if backend == "sqs":
            _publish_sqs(event_type, payload)
            return

        raise RuntimeError(f"Unsupported EVENT_BACKEND={backend}")

    except Exception as e:
        if safe:
            logger.warning("event publish failed type=%s error=%r", event_type, e)
            return
        raise


def _publish_rabbitmq(event_type: str, payload: Dict[str, Any]) -> None:
    # Import here so deployments on SQS can omit pika
    import pika

    rabbitmq_url = os.getenv("RABBITMQ_URL")
    if not rabbitmq_url:
        raise RuntimeError("RABBITMQ_URL is not set")

    exchange = os.getenv("EVENT_EXCHANGE", "decorbook.events")

    params = pika.URLParameters(rabbitmq_url)
    params.heartbeat = int(os.getenv("RABBITMQ_HEARTBEAT", "30"))
    params.blocked_connection_timeout = float(os.getenv("RABBITMQ_BLOCKED_TIMEOUT", "5"))

    conn = pika.BlockingConnection(params)
    try:
        ch = conn.channel()
        ch.exchange_declare(exchange=exchange, exchange_type="topic", durable=True)
        ch.basic_publish(
            exchange=exchange,
            routing_key=event_type,
            body=_encode(event_type, payload).encode("utf-8"),
            properties=pika.BasicProperties(delivery_mode=2),
        )
    finally:
        if conn.is_open:
            conn.close()


def _publish_sqs(event_type: str, payload: Dict[str, Any]) -> None:
    global _sqs_client
    import boto3

    queue_url = os.getenv("SQS_QUEUE_URL")
    if not queue_url:
        raise RuntimeError("SQS_QUEUE_URL is not set")

    if _sqs_client is None:
        _sqs_client = boto3.client("sqs")

    _sqs_client.send_message(
        QueueUrl=queue_url,
        MessageBody=_encode(event_type, payload),
        MessageAttributes={
            "type": {"DataType": "String", "StringValue": event_type}
        },
    )
