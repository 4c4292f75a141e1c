import json
import logging

import pika

from order_service import config

logger = logging.getLogger(__name__)

# Queue Names
ORDER_PLACED_QUEUE = "order_placed_queue"
ORDER_UPDATES_QUEUE = "order_updates_queue"

ORDER_PLACED = "ORDER_PLACED"
ORDER_STATUS_UPDATE = "ORDER_STATUS_UPDATE"

EVENT_QUEUES = {
    ORDER_PLACED: ORDER_PLACED_QUEUE,
    ORDER_STATUS_UPDATE: ORDER_UPDATES_QUEUE,
}


def build_order_message(event: str, order) -> dict:
    return {
        "event": event,
        "data": {
            "orderId": order.id,
            "userId": order.userId,
            "status": order.status,
            "payment": order.payment,
        }
    }


# Utility to publish to RabbitMQ with authentication
def publish_to_queue(queue_name: str, message: dict):
    credentials = pika.PlainCredentials(config.RABBITMQ_USER, config.RABBITMQ_PASS)
    parameters = pika.ConnectionParameters(
        host=config.RABBITMQ_HOST,
        credentials=credentials
    )
    connection = pika.BlockingConnection(parameters)
    try:
        channel = connection.channel()
        channel.queue_declare(queue=queue_name, durable=True)
        channel.basic_publish(
            exchange='',
            routing_key=queue_name,
            body=json.dumps(message),
            properties=pika.BasicProperties(delivery_mode=2)  # make message persistent
        )
    finally:
        connection.close()


def publish_order_event(event: str, order) -> bool:
    """Best-effort: the order is already committed, so broker failures are only logged."""
    if not config.ORDER_EVENTS_ENABLED:
        return False
    message = build_order_message(event, order)
    try:
        publish_to_queue(EVENT_QUEUES[event], message)
    except pika.exceptions.AMQPError as e:
        logger.error(f"Failed to publish {event} for order {order.id}: {e}")
        return False
    return True
