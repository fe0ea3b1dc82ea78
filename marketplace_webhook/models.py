"""
Wire models for marketplace webhook events.

Every variant carries the envelope fields ($type, eventId, lastUpdated) and is
decoded twice: once through EventTypeHolder to pick a handler, then fully into
its own model. Fields default to their zero value so that an absent field
decodes cleanly and is reported by the required-field validator instead.
Decoding is strict: a value of the wrong JSON type is rejected, not coerced.

Each field's title is the name validation errors report it under.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, strict=True)


class EventTypeHolder(WireModel):
    """Only the discriminant; used for the first, lightweight decode."""
    event_type: str = Field('', alias='$type', title='Type')


class BaseEvent(WireModel):
    event_type: str = Field('', alias='$type', title='Type')
    event_id: str = Field('', alias='eventId', title='EventId')
    last_updated: str = Field('', alias='lastUpdated', title='LastUpdated')


class OrderEventBase(BaseEvent):
    """Envelope plus the external order id shared by the order family."""
    external_order_id: str = Field('', alias='externalOrderId', title='ExternalOrderID')


class OrderDetail(WireModel):
    external_order_group_id: str = Field('', alias='externalOrderGroupId', title='ExternalOrderGroupID')
    external_order_line_id: str = Field('', alias='externalOrderLineId', title='ExternalOrderLineID')
    line_type: str = Field('', alias='type', title='Type')
    internal_id: str = Field('', alias='internalId', title='InternalID')


class OrderCreated(OrderEventBase):
    details: List[OrderDetail] = Field(default_factory=list, title='Details')


class OrderError(WireModel):
    code: str = Field('', title='Code')
    message: str = Field('', title='Message')


class OrderCreationFailed(OrderEventBase):
    errors: List[OrderError] = Field(default_factory=list, title='Errors')


class OrderLineCancelled(OrderEventBase):
    external_order_line_id: str = Field('', alias='externalOrderLineId', title='ExternalOrderLineID')
    reason: str = Field('', title='Reason')


class OrderLineRefunded(OrderEventBase):
    external_order_line_id: str = Field('', alias='externalOrderLineId', title='ExternalOrderLineID')
    refund_id: str = Field('', alias='refundId', title='RefundID')
    amount: float = Field(0.0, title='Amount')


class ShippingDetails(WireModel):
    carrier: str = Field('', title='Carrier')
    tracking_numbers: List[str] = Field(default_factory=list, alias='trackingNumbers', title='TrackingNumbers')


class OrderLineShipped(OrderEventBase):
    external_order_line_id: str = Field('', alias='externalOrderLineId', title='ExternalOrderLineID')
    shipping: ShippingDetails = Field(default_factory=ShippingDetails, title='Shipping')


class OrderLineShippingDeleted(OrderEventBase):
    external_order_line_id: str = Field('', alias='externalOrderLineId', title='ExternalOrderLineID')
    tracking_numbers: List[str] = Field(default_factory=list, alias='trackingNumbers', title='TrackingNumbers')


class VariantStockUpdated(BaseEvent):
    deal_id: str = Field('', alias='dealId', title='DealID')
    # any JSON value; only null counts as missing
    variant_id: Any = Field(None, alias='variantId', title='VariantID')
    stock: int = Field(0, title='Stock')


class EventOptions(WireModel):
    """Attributes promoted onto a stored event for secondary lookups."""
    deal_id: Optional[str] = None
    external_order_id: Optional[str] = None


class OrderEvent(WireModel):
    """An order event as read back from the orders table."""
    event_type: str = Field('', alias='eventType')
    external_order_id: str = Field('', alias='externalOrderID')
    last_updated: str = Field('', alias='lastUpdated')
    pk: str = ''
    sk: str = ''
    event_data: str = Field('', alias='eventData')

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'OrderEvent':
        """
        Convert a DynamoDB item into an OrderEvent.

        Args:
            item: Item as returned by the boto3 table resource

        Returns:
            OrderEvent built from the item attributes

        Raises:
            pydantic.ValidationError: if an attribute is not a string
        """
        return cls.model_validate({
            'eventType': item.get('EventType', ''),
            'externalOrderID': item.get('ExternalOrderId', ''),
            'lastUpdated': item.get('LastUpdated', ''),
            'pk': item.get('PK', ''),
            'sk': item.get('SK', ''),
            'eventData': item.get('EventData', ''),
        })
