import logging
import sys

import uvicorn

from .app import create_app
from .config import load_settings
from .errors import ConfigurationError, StorageError
from .storage import connect_to_database

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'

logger = logging.getLogger('marketplace_webhook')


def main() -> None:
    """
    Load settings, connect to DynamoDB, make sure the tables exist and serve
    the webhook app. Exits with status 1 if any startup step fails.
    """
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    try:
        settings = load_settings()
        logging.getLogger().setLevel(settings.log_level)

        database = connect_to_database(settings)
        created = database.initialize_tables(settings.table_names)
        if created:
            logger.info(f"Created tables: {', '.join(created)}")
    except (ConfigurationError, StorageError) as e:
        logger.critical(f"Startup failed: {str(e)}")
        sys.exit(1)

    app = create_app(settings, database)
    logger.info(f"Server is running on {settings.server_host}:{settings.server_port}")
    uvicorn.run(app, host=settings.server_host, port=settings.server_port, log_level=settings.log_level.lower())


if __name__ == '__main__':
    main()
