from .helpers import build_where_clause, quote_identifier


def group_edits_by_row(edits):
    """
    Groups pending cell edits {rowId, col, value, originalRow} by rowId, keeping
    first-seen row order. A later edit of the same cell replaces the earlier one.
    """
    rows = {}
    for edit in edits:
        if not isinstance(edit, dict) or edit.get('col') in (None, ''):
            raise ValueError(f"Invalid edit: {edit}")
        row_edits = rows.setdefault(edit.get('rowId'), [])
        for index, existing in enumerate(row_edits):
            if existing['col'] == edit['col']:
                row_edits[index] = edit
                break
        else:
            row_edits.append(edit)
    return rows


def resolve_table(fields, column):
    """(schema, table) the column was read from; schema is None for unqualified tables."""
    for field in fields:
        if field.get('name') == column:
            return field.get('schema'), field.get('orgTable') or field.get('table')
    return None, None


def build_row_update(table, row_edits, fields, schema=None):
    """
    UPDATE for one edited row, matching the row by every original column value
    (optimistic locking) and touching at most one row.
    Returns (sql, params).
    """
    set_clauses = []
    set_params = []
    for edit in row_edits:
        set_clauses.append(f"{quote_identifier(edit['col'])} = %s")
        set_params.append(edit.get('value'))

    original_row = row_edits[0].get('originalRow') or {}
    conditions = []
    for field in fields:
        name = field.get('name')
        value = original_row.get(name)
        if value is None:
            conditions.append({'column': name, 'operator': 'IS NULL'})
        else:
            conditions.append({'column': name, 'operator': '=', 'value': value})
    where_sql, where_params = build_where_clause(conditions)
    if not where_sql:
        raise ValueError(f"No columns to match the original row of {table}")

    target = quote_identifier(table)
    if schema:
        target = f"{quote_identifier(schema)}.{target}"
    sql = f"UPDATE {target} SET {', '.join(set_clauses)} WHERE {where_sql} LIMIT 1;"
    return sql, set_params + where_params


def build_edit_statements(edits, fields):
    """
    Turns pending result-grid edits into UPDATE statements.
    Returns (statements, skipped_row_ids); rows whose table cannot be determined are skipped.
    """
    statements = []
    skipped = []
    for row_id, row_edits in group_edits_by_row(edits).items():
        schema, table = resolve_table(fields, row_edits[0]['col'])
        if not table:
            skipped.append(row_id)
            continue
        statements.append(build_row_update(table, row_edits, fields, schema))
    return statements, skipped
