"""
Shared fixtures: settings, sample webhook bodies and a fake storage
collaborator that records calls instead of talking to DynamoDB.
"""

import copy
import json

import pytest
from fastapi.testclient import TestClient

from marketplace_webhook.app import create_app
from marketplace_webhook.config import Settings

ORDER_TABLE = 'orders-test'
PRODUCT_TABLE = 'products-test'

ORDER_CREATED = {
    "$type": "order/created",
    "eventId": "e1",
    "lastUpdated": "2024-05-03T03:48:13.506Z",
    "externalOrderId": "auto-test-1",
    "details": [
        {
            "externalOrderGroupId": "auto-test-1",
            "externalOrderLineId": "auto-test-1",
            "type": "Order",
            "internalId": "137955620",
        }
    ],
}

ORDER_CREATION_FAILED = {
    "$type": "order/creation-failed",
    "eventId": "e2",
    "lastUpdated": "2024-05-03T04:00:00.000Z",
    "externalOrderId": "auto-test-2",
    "errors": [{"code": "OUT_OF_STOCK", "message": "Variant is out of stock"}],
}

ORDER_LINE_CANCELLED = {
    "$type": "order-line/cancelled",
    "eventId": "e3",
    "lastUpdated": "2024-05-04T10:00:00.000Z",
    "externalOrderId": "auto-test-1",
    "externalOrderLineId": "line-1",
    "reason": "CustomerRequest",
}

ORDER_LINE_REFUNDED = {
    "$type": "order-line/refunded",
    "eventId": "e4",
    "lastUpdated": "2024-05-05T10:00:00.000Z",
    "externalOrderId": "auto-test-1",
    "externalOrderLineId": "line-1",
    "refundId": "refund-1",
    "amount": 19.95,
}

ORDER_LINE_SHIPPED = {
    "$type": "order-line/shipped",
    "eventId": "e5",
    "lastUpdated": "2024-05-06T10:00:00.000Z",
    "externalOrderId": "auto-test-1",
    "externalOrderLineId": "line-1",
    "shipping": {"carrier": "AusPost", "trackingNumbers": ["TN123"]},
}

ORDER_LINE_SHIPPING_DELETED = {
    "$type": "order-line/shipping-deleted",
    "eventId": "e6",
    "lastUpdated": "2024-05-07T10:00:00.000Z",
    "externalOrderId": "auto-test-1",
    "externalOrderLineId": "line-1",
    "trackingNumbers": ["TN123"],
}

VARIANT_STOCK_UPDATED = {
    "$type": "variant/stock-updated",
    "eventId": "e7",
    "lastUpdated": "2024-05-08T10:00:00.000Z",
    "dealId": "deal-42",
    "variantId": 9001,
    "stock": 12,
}

ALL_EVENTS = [
    ORDER_CREATED,
    ORDER_CREATION_FAILED,
    ORDER_LINE_CANCELLED,
    ORDER_LINE_REFUNDED,
    ORDER_LINE_SHIPPED,
    ORDER_LINE_SHIPPING_DELETED,
    VARIANT_STOCK_UPDATED,
]


def body_of(payload, **overrides) -> bytes:
    """JSON-encode a sample payload, with top-level fields replaced."""
    payload = copy.deepcopy(payload)
    payload.update(overrides)
    return json.dumps(payload).encode('utf-8')


class FakeDatabase:
    """Records storage calls; errors and query results are set per test."""

    def __init__(self):
        self.calls = []
        self.items = []
        self.store_error = None
        self.fetch_error = None
        self.describe_error = None
        self.closed = False

    def store_order_event(self, table_name, event_type, external_order_id, last_updated, merchant_id, payload):
        self.calls.append(
            ('store_order_event', table_name, event_type, external_order_id, last_updated, merchant_id, payload)
        )
        if self.store_error is not None:
            raise self.store_error

    def store_event(self, table_name, event_type, event_id, last_updated, merchant_id, payload, options=None):
        self.calls.append(
            ('store_event', table_name, event_type, event_id, last_updated, merchant_id, payload, options)
        )
        if self.store_error is not None:
            raise self.store_error

    def fetch_by_primary_key(self, table_name, pk):
        self.calls.append(('fetch_by_primary_key', table_name, pk))
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.items)

    def query_order_events_by_external_order_id(self, table_name, external_order_id):
        self.calls.append(('query_order_events_by_external_order_id', table_name, external_order_id))
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.items)

    def describe_table(self, table_name):
        self.calls.append(('describe_table', table_name))
        if self.describe_error is not None:
            raise self.describe_error
        return {'TableName': table_name, 'TableStatus': 'ACTIVE'}

    def close(self):
        self.closed = True


@pytest.fixture()
def settings():
    return Settings(order_table=ORDER_TABLE, product_table=PRODUCT_TABLE)


@pytest.fixture()
def database():
    return FakeDatabase()


@pytest.fixture()
def app(settings, database):
    return create_app(settings, database)


@pytest.fixture()
def client(app):
    return TestClient(app)
