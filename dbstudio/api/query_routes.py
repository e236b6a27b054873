# query_routes.py

import logging

from flask import Blueprint, jsonify, request
from mysql.connector import Error
from mysql.connector.constants import FieldType

from ..db import close_connection, get_db_connection
from .helpers import db_error_response, json_error, jsonable_rows
from .sql_utils import format_sql, single_source_table, split_statements, statement_at_cursor

logger = logging.getLogger(__name__)

query_bp = Blueprint('query', __name__)

# Lets GROUP BY queries select non-aggregated columns, as the editor's users expect.
RELAX_GROUP_BY_SQL = "SET SESSION sql_mode=(SELECT REPLACE(@@sql_mode,'ONLY_FULL_GROUP_BY',''))"


def describe_fields(cursor, statement):
    """
    Column metadata for a result set. 'table' is filled in for single-table SELECTs,
    and 'schema' too when the table name is qualified.
    """
    schema, table = single_source_table(statement) or (None, None)
    fields = []
    for column in cursor.description or []:
        field = {"name": column[0], "type": FieldType.get_info(column[1]) if column[1] is not None else None}
        if table:
            field["table"] = table
            field["orgTable"] = table
            if schema:
                field["schema"] = schema
        fields.append(field)
    return fields


def run_statements(cursor, statements):
    """Executes statements in order; returns one result dict per statement."""
    results = []
    for statement in statements:
        logger.debug("Executing SQL: %s", statement)
        cursor.execute(statement)
        if cursor.description is not None:
            rows = cursor.fetchall()
            results.append({"rows": jsonable_rows(rows), "fields": describe_fields(cursor, statement)})
        else:
            results.append({"rows": [], "fields": [], "affectedRows": cursor.rowcount})
    return results


@query_bp.route('/api/query', methods=['POST'])
def execute_query():
    """
    Executes ad-hoc SQL from the editor. A script with several statements runs
    them in order; rows/fields then hold one entry per statement.
    """
    if not request.is_json:
        return json_error("Request must be JSON", 400)
    payload = request.get_json(silent=True) or {}
    query = payload.get('query')
    if not query or not str(query).strip():
        return json_error("Query is required", 400)

    statements = split_statements(query)
    if not statements:
        return json_error("Query is required", 400)

    conn = None
    cursor = None
    try:
        conn = get_db_connection(payload)
        cursor = conn.cursor(dictionary=True)
        cursor.execute(RELAX_GROUP_BY_SQL)
        results = run_statements(cursor, statements)
        conn.commit()
    except Error as e:
        logger.error("Database error executing query: %s", e)
        logger.error("SQL attempted: %s", query)
        if conn is not None:
            conn.rollback()
        return db_error_response(e)
    finally:
        close_connection(conn, cursor)

    logger.info("Executed %d statement(s)", len(statements))
    if len(results) == 1:
        return jsonify({"success": True, **results[0]}), 200
    return jsonify({
        "success": True,
        "rows": [result["rows"] for result in results],
        "fields": [result["fields"] for result in results],
        "affectedRows": [result.get("affectedRows") for result in results],
    }), 200


@query_bp.route('/api/statement_at_cursor', methods=['POST'])
def get_statement_at_cursor():
    payload = request.get_json(silent=True) or {}
    text = payload.get('text') or ''
    try:
        offset = int(payload.get('offset', 0))
    except (TypeError, ValueError):
        return json_error("'offset' must be an integer", 400)
    return jsonify({"success": True, "statement": statement_at_cursor(text, offset)}), 200


@query_bp.route('/api/format', methods=['POST'])
def format_query():
    payload = request.get_json(silent=True) or {}
    query = payload.get('query')
    if not query:
        return json_error("Query is required", 400)
    return jsonify({"success": True, "formatted": format_sql(query)}), 200
