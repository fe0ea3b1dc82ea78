"""
Event handlers and the event type registry.

Each handler decodes the raw request body into its event model, runs the
required-field validator, derives the storage keys and hands the event to the
storage collaborator. The registry maps the "$type" discriminant to a handler
and is built once, before the first request, then only read.
"""

import logging
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import EventValidationError, MalformedPayloadError, UnhandledEventTypeError
from .models import (
    EventOptions,
    EventTypeHolder,
    OrderCreated,
    OrderCreationFailed,
    OrderEventBase,
    OrderLineCancelled,
    OrderLineRefunded,
    OrderLineShipped,
    OrderLineShippingDeleted,
    VariantStockUpdated,
)
from .validation import RequiredFieldError, validate_required_fields

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, bytes], None]

ModelT = TypeVar('ModelT', bound=BaseModel)

VARIANT_STOCK_UPDATED = 'variant/stock-updated'

# Event types stored in the orders table, keyed by external order id
ORDER_EVENT_MODELS: Dict[str, Type[OrderEventBase]] = {
    'order/created': OrderCreated,
    'order/creation-failed': OrderCreationFailed,
    'order-line/cancelled': OrderLineCancelled,
    'order-line/refunded': OrderLineRefunded,
    'order-line/shipped': OrderLineShipped,
    'order-line/shipping-deleted': OrderLineShippingDeleted,
}


def decode_event(model: Type[ModelT], raw_body: bytes, event_type: str) -> ModelT:
    try:
        return model.model_validate_json(raw_body)
    except ValidationError as e:
        raise MalformedPayloadError(f"failed to decode {event_type} event: {e}") from e


def validate_event(event: BaseModel, event_type: str) -> None:
    try:
        validate_required_fields(event)
    except RequiredFieldError as e:
        logger.warning(f"Validation error for {event_type} event: {e}")
        raise EventValidationError(event_type, e.field, str(e)) from e


def make_order_event_handler(database, table_name: str, model: Type[OrderEventBase], event_type: str) -> EventHandler:
    """
    Build the handler for one order-family event type.

    Args:
        database: Storage collaborator
        table_name: Orders table
        model: Event model the body is decoded into
        event_type: Discriminant the handler is registered under

    Returns:
        Handler taking (merchant_id, raw_body)
    """
    def handle(merchant_id: str, raw_body: bytes) -> None:
        logger.info(f"Processing {event_type} event")
        event = decode_event(model, raw_body, event_type)
        validate_event(event, event_type)

        logger.info(
            f"Storing {event_type} event for marketplace: {merchant_id}, "
            f"External Order ID: {event.external_order_id}"
        )
        database.store_order_event(
            table_name,
            event.event_type,
            event.external_order_id,
            event.last_updated,
            merchant_id,
            event,
        )

    handle.__name__ = f"handle_{model.__name__}"
    return handle


def make_variant_stock_updated_handler(database, table_name: str) -> EventHandler:
    def handle_variant_stock_updated(merchant_id: str, raw_body: bytes) -> None:
        event = decode_event(VariantStockUpdated, raw_body, VARIANT_STOCK_UPDATED)
        logger.info(
            f"Processing {VARIANT_STOCK_UPDATED} event for marketplace: {merchant_id}, "
            f"Event ID: {event.event_id}, Deal ID: {event.deal_id}"
        )
        validate_event(event, VARIANT_STOCK_UPDATED)

        options = EventOptions(deal_id=event.deal_id or None)
        database.store_event(
            table_name,
            event.event_type,
            event.event_id,
            event.last_updated,
            merchant_id,
            event,
            options,
        )

    return handle_variant_stock_updated


def build_event_handlers(database, order_table: str, product_table: str) -> Dict[str, EventHandler]:
    """
    Build the event type -> handler table.

    Args:
        database: Storage collaborator shared by every handler
        order_table: Table for order-family events
        product_table: Table for variant events

    Returns:
        A new dict with one handler per supported event type
    """
    handlers: Dict[str, EventHandler] = {
        event_type: make_order_event_handler(database, order_table, model, event_type)
        for event_type, model in ORDER_EVENT_MODELS.items()
    }
    handlers[VARIANT_STOCK_UPDATED] = make_variant_stock_updated_handler(database, product_table)
    return handlers


class EventDispatcher:
    """Routes a raw webhook body to the handler registered for its $type."""

    def __init__(self, handlers: Mapping[str, EventHandler]):
        self._handlers = MappingProxyType(dict(handlers))

    @property
    def handlers(self) -> Mapping[str, EventHandler]:
        return self._handlers

    @staticmethod
    def event_type_of(raw_body: bytes) -> str:
        """
        Read only the discriminant from a body.

        Raises:
            MalformedPayloadError: if the body is not a JSON object
        """
        try:
            return EventTypeHolder.model_validate_json(raw_body).event_type
        except ValidationError as e:
            raise MalformedPayloadError(f"failed to decode JSON body: {e}") from e

    def dispatch(self, merchant_id: str, raw_body: bytes) -> str:
        """
        Handle one webhook body for a merchant.

        Returns:
            The event type that was handled

        Raises:
            MalformedPayloadError: body or event could not be decoded
            UnhandledEventTypeError: no handler for the event type
            EventValidationError: a required field is missing
            StorageError: the event could not be stored
        """
        event_type = self.event_type_of(raw_body)
        self.dispatch_event(event_type, merchant_id, raw_body)
        return event_type

    def dispatch_event(self, event_type: str, merchant_id: str, raw_body: bytes) -> None:
        """Run the handler for an already-peeked event type."""
        logger.info(f"Received event type: {event_type}")

        handler = self._handlers.get(event_type)
        if handler is None:
            logger.warning(f"No handler found for event type: {event_type}")
            raise UnhandledEventTypeError(event_type)

        handler(merchant_id, raw_body)
