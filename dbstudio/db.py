import logging
import os

import mysql.connector

logger = logging.getLogger(__name__)

# Fields a client may send with any request to target a specific server.
CONNECTION_FIELDS = ('host', 'user', 'password', 'database', 'port')
DEFAULT_PORT = 3306


def default_db_config():
    """Connection defaults from the environment (.env is loaded by the app factory)."""
    return {
        'host': os.getenv('MYSQL_HOST', 'localhost'),
        'port': os.getenv('MYSQL_PORT', DEFAULT_PORT),
        'user': os.getenv('MYSQL_USER', 'root'),
        'password': os.getenv('MYSQL_PASSWORD', ''),
        'database': os.getenv('MYSQL_DB'),
    }


def resolve_db_config(payload=None, include_database=True):
    """Merges connection fields from a request payload over the environment defaults."""
    config = default_db_config()
    for field in CONNECTION_FIELDS:
        value = (payload or {}).get(field)
        if value is not None and value != '':
            config[field] = value

    try:
        config['port'] = int(config['port'])
    except (TypeError, ValueError):
        config['port'] = DEFAULT_PORT

    if not include_database or not config.get('database'):
        config.pop('database', None)
    return config


def get_db_connection(payload=None, include_database=True):
    """
    Opens a new MySQL connection for one request.
    Raises mysql.connector.Error on failure; callers close it in a finally block.
    """
    config = resolve_db_config(payload, include_database)
    logger.debug("Connecting to MySQL at %s:%s as %s (database=%s)",
                 config['host'], config['port'], config['user'], config.get('database'))
    return mysql.connector.connect(**config)


def close_connection(conn, cursor=None):
    if cursor is not None:
        cursor.close()
    if conn is not None and conn.is_connected():
        conn.close()
        logger.debug("MySQL connection closed")
