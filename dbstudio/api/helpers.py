import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from flask import jsonify

logger = logging.getLogger(__name__)

ALLOWED_OPERATORS = {'=', '!=', '>', '<', '>=', '<=', 'LIKE', 'NOT LIKE', 'IS NULL', 'IS NOT NULL'}

# MySQL error numbers translated into friendlier messages for the client.
MYSQL_ERROR_HINTS = {
    1044: "Access denied to the requested database.",
    1045: "Access denied. Check the user name and password.",
    1049: "Unknown database.",
    1054: "Unknown column specified. Check spelling/tables/aliases.",
    1064: "Syntax error in SQL.",
    1146: "Table does not exist.",
    2003: "Cannot reach the MySQL server. Check host and port.",
    2005: "Unknown MySQL server host.",
}

# Errors caused by the submitted SQL rather than by the server.
CLIENT_ERRNOS = {1054, 1064, 1146}


def quote_identifier(name):
    """Wraps a MySQL identifier in backticks, doubling any embedded backtick."""
    return "`" + str(name).replace("`", "``") + "`"


def json_error(message, status=500, **extra):
    body = {"success": False, "message": message}
    body.update(extra)
    return jsonify(body), status


def db_error_response(error, **extra):
    """Translates a mysql.connector Error into a JSON error response."""
    errno = getattr(error, 'errno', None)
    detail = getattr(error, 'msg', None) or str(error)
    hint = MYSQL_ERROR_HINTS.get(errno)
    message = f"{hint} (Details: {detail})" if hint else detail
    status = 400 if errno in CLIENT_ERRNOS else 500
    return json_error(message, status, errno=errno, **extra)


def to_jsonable(value):
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode('utf-8', errors='replace')
    if isinstance(value, set):
        return sorted(value)
    if isinstance(value, timedelta):
        return str(value)
    # Same text MySQL prints, so the value can be matched again in a WHERE clause.
    if isinstance(value, datetime):
        return value.isoformat(sep=' ')
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def jsonable_rows(rows):
    return [{key: to_jsonable(val) for key, val in row.items()} for row in rows]


def build_where_clause(conditions_list):
    """
    Builds a WHERE clause string and parameter list from a list of condition objects.
    Each condition is {column, operator, value, connector}. Handles AND/OR connectors between conditions.
    """
    where_clause_parts = []
    where_params = []
    if not isinstance(conditions_list, list):
        raise ValueError("WHERE conditions must be a list")

    for index, condition in enumerate(conditions_list):
        column_ref = condition.get('column')
        operator = str(condition.get('operator', '=')).strip().upper()
        value = condition.get('value')
        connector = str(condition.get('connector', 'AND')).strip().upper() if index > 0 else None

        if not column_ref:
            raise ValueError(f"Incomplete where condition (missing column): {condition}")
        if operator not in ALLOWED_OPERATORS:
            raise ValueError(f"Invalid where operator: {operator}")
        if connector and connector not in ('AND', 'OR'):
            raise ValueError(f"Invalid connector: {connector}")

        safe_col_ref = quote_identifier(column_ref)

        if connector:
            where_clause_parts.append(connector)

        if operator in ('IS NULL', 'IS NOT NULL'):
            where_clause_parts.append(f"{safe_col_ref} {operator}")
            if value is not None and str(value).strip() != '':
                logger.warning("Value %r provided for WHERE operator %s on column %s will be ignored.",
                               value, operator, column_ref)
        else:
            where_clause_parts.append(f"{safe_col_ref} {operator} %s")
            where_params.append(value)

    if not where_clause_parts:
        return "", []

    return " ".join(where_clause_parts), where_params
