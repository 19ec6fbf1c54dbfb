import json, logging
from kafka import KafkaProducer
from kafka.errors import KafkaError
from storefront.core.config import settings

logger = logging.getLogger(__name__)

_producer = None

def _get_producer() -> KafkaProducer:
    global _producer
    if _producer is None:
        _producer = KafkaProducer(
            bootstrap_servers=[settings.KAFKA_BOOTSTRAP],
            value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
            key_serializer=lambda v: (v.encode("utf-8") if isinstance(v, str) else v),
            linger_ms=10,
            retries=5,
        )
    return _producer

def emit(event: dict):
    """Emit to order.events (configurable). Never raises for broker trouble."""
    if not settings.KAFKA_ENABLED:
        return
    try:
        p = _get_producer()
        p.send(settings.TOPIC_ORDER_EVENTS, key=str(event.get("order_id", "")), value=event)
        p.flush(5)
    except KafkaError:
        logger.warning("could not publish %s for order %s", event.get("type"), event.get("order_id"), exc_info=True)

def emit_order_event(event_type: str, order, **extra):
    emit({
        "type": event_type,
        "order_id": order.id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "status": order.status.value,
        "total_amount": str(order.total_amount),
        **extra,
    })
