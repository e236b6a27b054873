import logging

from flask import Blueprint, jsonify, request
from mysql.connector import Error

from ..db import close_connection, get_db_connection
from .helpers import db_error_response, json_error, quote_identifier

logger = logging.getLogger(__name__)

connection_bp = Blueprint('connection', __name__)


@connection_bp.route('/api/ping', methods=['GET'])
def ping_pong():
    return jsonify(message='pong!')


@connection_bp.route('/api/connect', methods=['POST'])
def connect():
    """
    Tests the connection fields sent by the client.
    With createDatabase, connects without a database, creates it if missing and switches to it.
    """
    if not request.is_json:
        return json_error("Request must be JSON", 400)
    payload = request.get_json(silent=True) or {}
    create_database = bool(payload.get('createDatabase'))
    database = payload.get('database')
    if create_database and not database:
        return json_error("Missing database name", 400)

    conn = None
    cursor = None
    try:
        conn = get_db_connection(payload, include_database=not create_database)
        server_info = conn.get_server_info()
        if create_database:
            cursor = conn.cursor()
            cursor.execute(f"CREATE DATABASE IF NOT EXISTS {quote_identifier(database)}")
            conn.database = database
            logger.info("Created database %s (if missing) and switched to it", database)
    except Error as e:
        logger.error("Connection to %s failed: %s", payload.get('host'), e)
        return db_error_response(e)
    finally:
        close_connection(conn, cursor)

    message = 'Database created and connected' if create_database else 'Connection successful'
    return jsonify({"success": True, "message": message, "serverInfo": server_info}), 200
