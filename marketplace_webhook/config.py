import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Order matters: tables are paired with their definitions by position
TABLE_NAME_ENV_VARS = [
    'DYNAMODB_ORDER_TABLE_NAME',
    'DYNAMODB_PRODUCT_TABLE_NAME',
]

DEFAULT_LOCAL_ENDPOINT = 'http://localhost:8000'


@dataclass(frozen=True)
class Settings:
    order_table: str
    product_table: str
    server_host: str = '0.0.0.0'
    server_port: int = 8080
    dynamodb_endpoint: str = DEFAULT_LOCAL_ENDPOINT
    dynamodb_region: str = 'us-east-1'
    aws_role_arn: Optional[str] = None
    web_identity_token_file: Optional[str] = None
    log_level: str = 'INFO'

    @property
    def table_names(self) -> List[str]:
        return [self.order_table, self.product_table]


def load_table_names(*env_vars: str) -> List[str]:
    """
    Read table names from the given environment variables.

    Args:
        env_vars: Environment variable names, in table order

    Returns:
        List of table names, one per variable

    Raises:
        ConfigurationError: if any of the variables is unset or empty
    """
    table_names = []
    missing = []
    for env_var in env_vars:
        table_name = os.environ.get(env_var, '')
        if table_name:
            table_names.append(table_name)
        else:
            missing.append(env_var)

    if missing:
        raise ConfigurationError(f"Missing table name configuration: {', '.join(missing)}")

    for table_name in table_names:
        logger.info(f"Loaded table name: {table_name}")
    return table_names


def load_settings(dotenv_path: Optional[str] = None) -> Settings:
    """
    Build settings from the environment, reading a .env file first if present.
    Variables already set in the environment win over the .env file.
    """
    load_dotenv(dotenv_path or find_dotenv(usecwd=True))

    order_table, product_table = load_table_names(*TABLE_NAME_ENV_VARS)

    port = os.environ.get('SERVER_PORT', '8080')
    try:
        server_port = int(port)
    except ValueError:
        raise ConfigurationError(f"SERVER_PORT must be an integer, got {port!r}")

    log_level = os.environ.get('LOG_LEVEL', 'INFO').upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigurationError(f"LOG_LEVEL must be a logging level name, got {log_level!r}")

    return Settings(
        order_table=order_table,
        product_table=product_table,
        server_host=os.environ.get('SERVER_HOST', '0.0.0.0'),
        server_port=server_port,
        dynamodb_endpoint=os.environ.get('DYNAMODB_ENDPOINT') or DEFAULT_LOCAL_ENDPOINT,
        dynamodb_region=os.environ.get('DYNAMODB_REGION') or 'us-east-1',
        aws_role_arn=os.environ.get('AWS_ROLE_ARN') or None,
        web_identity_token_file=os.environ.get('AWS_WEB_IDENTITY_TOKEN_FILE') or None,
        log_level=log_level,
    )
