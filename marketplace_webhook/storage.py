import json
import logging
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel

from . import tables
from .config import Settings
from .errors import ConfigurationError, StorageError
from .models import EventOptions

logger = logging.getLogger(__name__)


def order_event_keys(merchant_id: str, external_order_id: str, last_updated: str, event_type: str) -> Dict[str, str]:
    return {
        'PK': f"#PK#{merchant_id}#{external_order_id}",
        'SK': f"#SK#{last_updated}#{event_type}",
    }


def event_keys(merchant_id: str, event_type: str, event_id: str, last_updated: str) -> Dict[str, str]:
    return {
        'PK': f"PK{merchant_id}#{event_type}#{event_id}",
        'SK': f"SK{last_updated}",
    }


def serialize_payload(payload: Any) -> str:
    """Serialize an event using its wire field names."""
    if isinstance(payload, BaseModel):
        return payload.model_dump_json(by_alias=True)
    return json.dumps(payload)


class DynamoDBDatabase:
    """
    Storage collaborator backed by DynamoDB.

    One instance is created at startup and shared by all requests. It only
    holds the boto3 resource and client, which are safe to share across
    threads; a Table handle is created per call.
    """

    def __init__(self, resource, client=None):
        self.resource = resource
        self.client = client if client is not None else resource.meta.client

    def _put_item(self, table_name: str, item: Dict[str, Any]) -> None:
        try:
            self.resource.Table(table_name).put_item(Item=item)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to put item in table {table_name}: {str(e)}")
            raise StorageError(f"failed to put item in table {table_name}: {e}") from e
        logger.info(f"Data successfully stored in table: {table_name}")

    def store_order_event(
        self,
        table_name: str,
        event_type: str,
        external_order_id: str,
        last_updated: str,
        merchant_id: str,
        payload: Any,
    ) -> None:
        """
        Store an order-family event, keyed by merchant and external order id
        and sorted by timestamp then event type.
        """
        item = order_event_keys(merchant_id, external_order_id, last_updated, event_type)
        item.update({
            'ExternalOrderId': external_order_id,
            'LastUpdated': last_updated,
            'EventType': event_type,
            'EventData': serialize_payload(payload),
        })
        self._put_item(table_name, item)

    def store_event(
        self,
        table_name: str,
        event_type: str,
        event_id: str,
        last_updated: str,
        merchant_id: str,
        payload: Any,
        options: Optional[EventOptions] = None,
    ) -> None:
        """
        Store a non-order event keyed by merchant, event type and event id.

        Args:
            options: Promoted attributes; DealId and ExternalOrderId are only
                written when set
        """
        item = event_keys(merchant_id, event_type, event_id, last_updated)
        item.update({
            'EventID': event_id,
            'EventType': event_type,
            'EventData': serialize_payload(payload),
        })
        if options is not None:
            if options.deal_id is not None:
                item['DealId'] = options.deal_id
            if options.external_order_id is not None:
                item['ExternalOrderId'] = options.external_order_id
        self._put_item(table_name, item)

    def _query_all(self, table_name: str, **kwargs) -> List[Dict[str, Any]]:
        table = self.resource.Table(table_name)
        items: List[Dict[str, Any]] = []
        try:
            while True:
                response = table.query(**kwargs)
                items.extend(response.get('Items', []))
                last_key = response.get('LastEvaluatedKey')
                if not last_key:
                    return items
                kwargs['ExclusiveStartKey'] = last_key
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error querying table {table_name}: {str(e)}")
            raise StorageError(f"failed to query table {table_name}: {e}") from e

    def fetch_by_primary_key(self, table_name: str, pk: str) -> List[Dict[str, Any]]:
        """Return every item under a partition key, newest sort key first."""
        return self._query_all(
            table_name,
            KeyConditionExpression='#pk = :pk',
            ExpressionAttributeNames={'#pk': 'PK'},
            ExpressionAttributeValues={':pk': pk},
            ScanIndexForward=False,
        )

    def fetch_by_gsi(self, table_name: str, index_name: str, key_name: str, key_value: str) -> List[Dict[str, Any]]:
        return self._query_all(
            table_name,
            IndexName=index_name,
            KeyConditionExpression='#key = :value',
            ExpressionAttributeNames={'#key': key_name},
            ExpressionAttributeValues={':value': key_value},
        )

    def query_order_events_by_external_order_id(self, table_name: str, external_order_id: str) -> List[Dict[str, Any]]:
        return self.fetch_by_gsi(
            table_name,
            tables.ORDERS_EXTERNAL_ORDER_ID_INDEX,
            'ExternalOrderId',
            external_order_id,
        )

    def describe_table(self, table_name: str) -> Dict[str, Any]:
        """
        Describe a table; used as the database health check.

        Returns:
            The Table description

        Raises:
            StorageError: if the table cannot be described
        """
        try:
            response = self.client.describe_table(TableName=table_name)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error describing table {table_name}: {str(e)}")
            raise StorageError(f"failed to describe table {table_name}: {e}") from e

        table = response.get('Table', {})
        throughput = table.get('ProvisionedThroughput', {})
        logger.info(
            f"Table {table_name}: status={table.get('TableStatus')}, "
            f"items={table.get('ItemCount')}, "
            f"read_capacity={throughput.get('ReadCapacityUnits')}, "
            f"write_capacity={throughput.get('WriteCapacityUnits')}"
        )
        return table

    def create_table_if_not_exists(self, table_name: str) -> bool:
        return tables.create_table_if_not_exists(self.client, table_name)

    def initialize_tables(self, table_names: List[str]) -> List[str]:
        try:
            return tables.initialize_tables(self.client, table_names)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"failed to initialize tables: {e}") from e

    def close(self) -> None:
        close = getattr(self.client, 'close', None)
        if close is not None:
            close()
        self.resource = None
        self.client = None


def check_aws_role_availability(settings: Settings) -> bool:
    """
    Return True if a role is configured and STS accepts the credentials.
    """
    if not settings.aws_role_arn:
        return False

    logger.info(f"Checking AWS role: {settings.aws_role_arn}")
    try:
        boto3.client('sts', region_name=settings.dynamodb_region).get_caller_identity()
    except (BotoCoreError, ClientError) as e:
        logger.warning(f"AWS role not available: {str(e)}")
        return False
    return True


def connect_to_aws_dynamodb(settings: Settings):
    """Connect with the default credential chain (web identity role)."""
    if not settings.aws_role_arn or not settings.web_identity_token_file:
        raise ConfigurationError("AWS_ROLE_ARN or AWS_WEB_IDENTITY_TOKEN_FILE is not set")

    session = boto3.session.Session()
    return session.resource('dynamodb', region_name=session.region_name or settings.dynamodb_region)


def connect_to_local_dynamodb(settings: Settings):
    logger.info(f"Connecting to local DynamoDB at {settings.dynamodb_endpoint} ({settings.dynamodb_region})")
    return boto3.resource(
        'dynamodb',
        endpoint_url=settings.dynamodb_endpoint,
        region_name=settings.dynamodb_region,
        aws_access_key_id='dummy',
        aws_secret_access_key='dummy',
    )


def connect_to_database(settings: Settings) -> DynamoDBDatabase:
    """
    Connect to DynamoDB on AWS when a role is available, otherwise locally.

    Raises:
        StorageError: if DynamoDB cannot be reached
    """
    if check_aws_role_availability(settings):
        resource = connect_to_aws_dynamodb(settings)
    else:
        resource = connect_to_local_dynamodb(settings)

    database = DynamoDBDatabase(resource)
    try:
        database.client.list_tables(Limit=1)
    except (BotoCoreError, ClientError) as e:
        logger.error(f"Error connecting to DynamoDB: {str(e)}")
        raise StorageError(f"failed to connect to DynamoDB: {e}") from e

    logger.info(f"Database connected in region: {database.client.meta.region_name}")
    return database
