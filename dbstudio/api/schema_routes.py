import logging

from flask import Blueprint, jsonify, request
from mysql.connector import Error

from ..db import close_connection, get_db_connection
from .helpers import db_error_response, quote_identifier

logger = logging.getLogger(__name__)

schema_bp = Blueprint('schema', __name__)

FOREIGN_KEYS_SQL = """
SELECT TABLE_NAME, COLUMN_NAME, REFERENCED_TABLE_NAME, REFERENCED_COLUMN_NAME
FROM information_schema.KEY_COLUMN_USAGE
WHERE TABLE_SCHEMA = %s AND REFERENCED_TABLE_NAME IS NOT NULL
"""


def fetch_schema(cursor, database):
    """
    Reads tables, their columns and foreign keys using a dictionary cursor.
    Returns (schema, foreign_keys): schema maps table name -> [{name, type, key}].
    """
    cursor.execute("SHOW TABLES")
    table_names = [next(iter(row.values())) for row in cursor.fetchall()]

    schema = {}
    for table_name in table_names:
        cursor.execute(f"DESCRIBE {quote_identifier(table_name)}")
        schema[table_name] = [
            {"name": col.get('Field'), "type": col.get('Type'), "key": col.get('Key')}
            for col in cursor.fetchall()
        ]

    foreign_keys = []
    if database:
        cursor.execute(FOREIGN_KEYS_SQL, (database,))
        for row in cursor.fetchall():
            foreign_keys.append({
                "table": row['TABLE_NAME'],
                "column": row['COLUMN_NAME'],
                "refTable": row['REFERENCED_TABLE_NAME'],
                "refColumn": row['REFERENCED_COLUMN_NAME'],
            })
    return schema, foreign_keys


@schema_bp.route('/api/schema', methods=['POST'])
def get_schema():
    """Schema of the connected database: feeds the navigator, editor completion and the query builder palette."""
    payload = request.get_json(silent=True) or {}
    conn = None
    cursor = None
    try:
        conn = get_db_connection(payload)
        cursor = conn.cursor(dictionary=True)
        schema, foreign_keys = fetch_schema(cursor, payload.get('database') or conn.database)
    except Error as e:
        logger.error("Error fetching schema: %s", e)
        return db_error_response(e)
    finally:
        close_connection(conn, cursor)

    logger.info("Fetched schema: %d tables, %d foreign keys", len(schema), len(foreign_keys))
    return jsonify({"success": True, "schema": schema, "foreignKeys": foreign_keys}), 200
