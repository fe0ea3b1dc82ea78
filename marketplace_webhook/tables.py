import copy
import logging
from typing import Any, Dict, List

from botocore.exceptions import BotoCoreError, ClientError

from .errors import ConfigurationError, StorageError

logger = logging.getLogger(__name__)

ORDERS_EXTERNAL_ORDER_ID_INDEX = 'ExternalOrderIdIndex'
PRODUCTS_DEAL_ID_INDEX = 'DealIdIndex'

DEFAULT_GSI_THROUGHPUT = {'ReadCapacityUnits': 10, 'WriteCapacityUnits': 10}

# CreateTable arguments without TableName, paired by position with the
# configured table names (orders first, then products)
TABLE_DEFINITIONS: List[Dict[str, Any]] = [
    {
        'AttributeDefinitions': [
            {'AttributeName': 'PK', 'AttributeType': 'S'},
            {'AttributeName': 'SK', 'AttributeType': 'S'},
            {'AttributeName': 'ExternalOrderId', 'AttributeType': 'S'},
        ],
        'KeySchema': [
            {'AttributeName': 'PK', 'KeyType': 'HASH'},
            {'AttributeName': 'SK', 'KeyType': 'RANGE'},
        ],
        'GlobalSecondaryIndexes': [
            {
                'IndexName': ORDERS_EXTERNAL_ORDER_ID_INDEX,
                'KeySchema': [
                    {'AttributeName': 'ExternalOrderId', 'KeyType': 'HASH'},
                    {'AttributeName': 'SK', 'KeyType': 'RANGE'},
                ],
            },
        ],
        'ProvisionedThroughput': {'ReadCapacityUnits': 5, 'WriteCapacityUnits': 5},
    },
    {
        'AttributeDefinitions': [
            {'AttributeName': 'PK', 'AttributeType': 'S'},
            {'AttributeName': 'SK', 'AttributeType': 'S'},
            {'AttributeName': 'DealId', 'AttributeType': 'S'},
        ],
        'KeySchema': [
            {'AttributeName': 'PK', 'KeyType': 'HASH'},
            {'AttributeName': 'SK', 'KeyType': 'RANGE'},
        ],
        'GlobalSecondaryIndexes': [
            {
                'IndexName': PRODUCTS_DEAL_ID_INDEX,
                'KeySchema': [
                    {'AttributeName': 'DealId', 'KeyType': 'HASH'},
                    {'AttributeName': 'SK', 'KeyType': 'RANGE'},
                ],
            },
        ],
        'ProvisionedThroughput': {'ReadCapacityUnits': 5, 'WriteCapacityUnits': 5},
    },
]


def table_exists(client, table_name: str) -> bool:
    """
    Check whether a table exists, following list_tables pagination.

    Args:
        client: DynamoDB low-level client
        table_name: Table to look for

    Returns:
        True if the table is listed, False otherwise
    """
    kwargs: Dict[str, Any] = {}
    while True:
        response = client.list_tables(**kwargs)
        if table_name in response.get('TableNames', []):
            return True
        last_evaluated = response.get('LastEvaluatedTableName')
        if not last_evaluated:
            return False
        kwargs['ExclusiveStartTableName'] = last_evaluated


def build_create_table_request(table_name: str, definition: Dict[str, Any]) -> Dict[str, Any]:
    """Fill in GSI defaults (projection ALL, 10/10 throughput) and the table name."""
    request = copy.deepcopy(definition)
    request['TableName'] = table_name
    for index in request.get('GlobalSecondaryIndexes', []):
        index.setdefault('Projection', {'ProjectionType': 'ALL'})
        index.setdefault('ProvisionedThroughput', dict(DEFAULT_GSI_THROUGHPUT))
    return request


def create_events_table_if_not_exists(client, table_name: str, definition: Dict[str, Any]) -> bool:
    """
    Create a table from a definition unless it already exists.

    Returns:
        True if the table was created, False if it already existed
    """
    if table_exists(client, table_name):
        logger.info(f"Table {table_name} already exists")
        return False

    client.create_table(**build_create_table_request(table_name, definition))
    logger.info(f"Table {table_name} created successfully")
    return True


def create_table_if_not_exists(client, table_name: str) -> bool:
    """
    Create a plain table keyed by a single PrimaryKey hash attribute.

    Returns:
        True if the table was created, False if it already existed
    """
    try:
        if table_exists(client, table_name):
            logger.info(f"Table {table_name} already exists")
            return False

        client.create_table(
            TableName=table_name,
            AttributeDefinitions=[{'AttributeName': 'PrimaryKey', 'AttributeType': 'S'}],
            KeySchema=[{'AttributeName': 'PrimaryKey', 'KeyType': 'HASH'}],
            ProvisionedThroughput={'ReadCapacityUnits': 10, 'WriteCapacityUnits': 10},
        )
    except (BotoCoreError, ClientError) as e:
        logger.error(f"Error creating table {table_name}: {str(e)}")
        raise StorageError(f"failed to create table {table_name}: {e}") from e

    logger.info(f"Table {table_name} created successfully")
    return True


def initialize_tables(client, table_names: List[str]) -> List[str]:
    """
    Make sure every configured table exists.

    Names are paired with TABLE_DEFINITIONS by position. A table that fails to
    create is logged and skipped so the remaining tables still get created.

    Args:
        client: DynamoDB low-level client
        table_names: Configured table names (orders, products)

    Returns:
        Names of the tables created by this call

    Raises:
        ConfigurationError: if the number of names does not match the definitions
    """
    logger.info("Initializing DynamoDB tables")
    if len(table_names) != len(TABLE_DEFINITIONS):
        raise ConfigurationError(
            f"Expected {len(TABLE_DEFINITIONS)} table names, got {len(table_names)}"
        )

    created = []
    for table_name, definition in zip(table_names, TABLE_DEFINITIONS):
        try:
            if create_events_table_if_not_exists(client, table_name, definition):
                created.append(table_name)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to create table {table_name}: {str(e)}")
    return created
