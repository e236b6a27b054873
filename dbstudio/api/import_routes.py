import logging

from flask import Blueprint, jsonify, request
from mysql.connector import Error

from ..db import close_connection, get_db_connection
from .helpers import db_error_response, json_error
from .query_routes import RELAX_GROUP_BY_SQL
from .sql_utils import split_statements

logger = logging.getLogger(__name__)

import_bp = Blueprint('import', __name__)


@import_bp.route('/api/import', methods=['POST'])
def import_sql_file():
    """
    Runs an uploaded .sql script (multipart field 'file') against the database
    named in the form's connection fields. All-or-nothing: rolls back on the first error.
    """
    upload = request.files.get('file')
    if upload is None:
        return json_error("No file uploaded", 400)

    script = upload.read().decode('utf-8', errors='replace')
    statements = split_statements(script)
    if not statements:
        return json_error("File is empty", 400)

    conn = None
    cursor = None
    current = None
    try:
        conn = get_db_connection(request.form.to_dict())
        cursor = conn.cursor()
        cursor.execute(RELAX_GROUP_BY_SQL)
        for current in statements:
            cursor.execute(current)
            if cursor.description is not None:
                cursor.fetchall()
        conn.commit()
    except Error as e:
        logger.error("Import of %s failed: %s", upload.filename, e)
        if conn is not None:
            conn.rollback()
        return db_error_response(e, sql=current)
    finally:
        close_connection(conn, cursor)

    logger.info("Imported %s: %d statement(s)", upload.filename, len(statements))
    return jsonify({"success": True, "message": "Import successful", "statements": len(statements)}), 200
