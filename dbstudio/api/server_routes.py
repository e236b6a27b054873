import logging

from flask import Blueprint, jsonify, request
from mysql.connector import Error

from ..db import close_connection, get_db_connection
from .helpers import db_error_response, jsonable_rows

logger = logging.getLogger(__name__)

server_bp = Blueprint('server', __name__)

SCHEMA_STATS_SQL = """
SELECT
  table_schema AS schema_name,
  COUNT(*) AS table_count,
  ROUND(SUM(data_length + index_length) / 1024 / 1024, 2) AS size_mb
FROM information_schema.tables
WHERE table_schema NOT IN ('information_schema', 'performance_schema', 'mysql', 'sys')
GROUP BY table_schema
"""

SERVER_INFO_SQL = """
SELECT
  VERSION() AS version,
  USER() AS user,
  @@hostname AS hostname,
  @@port AS port,
  @@datadir AS datadir
"""

UPTIME_SQL = "SHOW GLOBAL STATUS LIKE 'Uptime'"


def _fetch(payload, *queries):
    """Runs each query on one dictionary cursor; returns a list of row lists."""
    conn = None
    cursor = None
    try:
        conn = get_db_connection(payload)
        cursor = conn.cursor(dictionary=True)
        results = []
        for query in queries:
            cursor.execute(query)
            results.append(cursor.fetchall())
        return results
    finally:
        close_connection(conn, cursor)


def summarize_schema_stats(rows):
    total_size = sum(float(row.get('size_mb') or 0) for row in rows)
    total_tables = sum(int(row.get('table_count') or 0) for row in rows)
    return {"totalSizeMb": round(total_size, 2), "totalTables": total_tables}


@server_bp.route('/api/dashboard', methods=['POST'])
def dashboard():
    """Per-schema table counts and sizes, excluding the MySQL system schemas."""
    payload = request.get_json(silent=True) or {}
    try:
        (rows,) = _fetch(payload, SCHEMA_STATS_SQL)
    except Error as e:
        logger.error("Failed to fetch dashboard stats: %s", e)
        return db_error_response(e)
    stats = jsonable_rows(rows)
    return jsonify({"success": True, "stats": stats, **summarize_schema_stats(stats)}), 200


@server_bp.route('/api/server_status', methods=['POST'])
def server_status():
    payload = request.get_json(silent=True) or {}
    try:
        info_rows, uptime_rows = _fetch(payload, SERVER_INFO_SQL, UPTIME_SQL)
    except Error as e:
        logger.error("Failed to fetch server status: %s", e)
        return db_error_response(e)

    status = jsonable_rows(info_rows[:1])[0] if info_rows else {}
    uptime = uptime_rows[0].get('Value') if uptime_rows else 0
    try:
        status['uptime'] = int(uptime)
    except (TypeError, ValueError):
        status['uptime'] = 0
    return jsonify({"success": True, "status": status}), 200


@server_bp.route('/api/processlist', methods=['POST'])
def processlist():
    payload = request.get_json(silent=True) or {}
    try:
        (rows,) = _fetch(payload, "SHOW PROCESSLIST")
    except Error as e:
        logger.error("Failed to fetch process list: %s", e)
        return db_error_response(e)
    return jsonify({"success": True, "processes": jsonable_rows(rows)}), 200
