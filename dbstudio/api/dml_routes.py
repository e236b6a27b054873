import logging

from flask import Blueprint, jsonify, request
from mysql.connector import Error

from ..db import close_connection, get_db_connection
from .dml_utils import build_edit_statements
from .helpers import db_error_response, json_error

logger = logging.getLogger(__name__)

dml_bp = Blueprint('dml', __name__)


@dml_bp.route('/api/save_edits', methods=['POST'])
def save_edits():
    """
    Saves inline result-grid edits. Each edited row becomes one
    UPDATE ... WHERE <all original values> LIMIT 1 with parameterized values.
    Set 'execute' to false to only preview the generated statements.
    """
    if not request.is_json:
        return json_error("Request must be JSON", 400)
    payload = request.get_json(silent=True) or {}
    edits = payload.get('edits')
    fields = payload.get('fields') or []
    if not edits or not isinstance(edits, list):
        return json_error("No pending edits to save", 400)
    if not isinstance(fields, list):
        return json_error("'fields' must be a list", 400)

    try:
        statements, skipped = build_edit_statements(edits, fields)
    except ValueError as ve:
        return json_error(f"Invalid edits: {ve}", 400)

    if skipped:
        logger.warning("Could not determine table name for %d edited row(s)", len(skipped))

    preview = [{"sql": sql, "params": params} for sql, params in statements]
    if not statements:
        return json_error(f"Could not generate updates for {len(skipped)} rows due to missing table information.",
                          400, skippedRows=skipped)
    if not payload.get('execute', True):
        return jsonify({"success": True, "statements": preview, "skippedRows": skipped}), 200

    conn = None
    cursor = None
    affected_rows = 0
    try:
        conn = get_db_connection(payload)
        cursor = conn.cursor()
        for sql, params in statements:
            logger.debug("Executing SQL: %s Parameters: %s", sql, params)
            cursor.execute(sql, params)
            affected_rows += max(cursor.rowcount, 0)
        conn.commit()
    except Error as e:
        if conn is not None:
            conn.rollback()
        logger.error("Database error saving edits: %s", e)
        return db_error_response(e, statements=preview)
    finally:
        close_connection(conn, cursor)

    message = f"UPDATE successful. Rows affected: {affected_rows}"
    if affected_rows < len(statements):
        message = f"{len(statements) - affected_rows} edited row(s) no longer matched their original values."
    logger.info(message)
    return jsonify({
        "success": True,
        "message": message,
        "statements": preview,
        "skippedRows": skipped,
        "affectedRows": affected_rows,
    }), 200
