import sqlparse
from sqlparse import sql, tokens as T


def strip_trailing_semicolons(query):
    """Removes trailing semicolons (and surrounding whitespace) from a SQL text."""
    text = (query or '').strip()
    while text.endswith(';'):
        text = text[:-1].strip()
    return text


def statement_at_cursor(text, offset):
    """
    Returns the statement containing the cursor offset.

    Naive split on ';': semicolons inside strings or comments are not
    recognised. A statement's span includes its terminating semicolon.
    """
    text = text or ''
    current_offset = 0
    for statement in text.split(';'):
        span = len(statement) + 1
        if current_offset + span >= offset:
            return statement.strip()
        current_offset += span
    return text.strip()


def split_statements(query):
    """Splits a script into individual statements, without their terminating semicolons."""
    statements = []
    for statement in sqlparse.split(query or ''):
        statement = strip_trailing_semicolons(statement)
        if statement:
            statements.append(statement)
    return statements


def format_sql(query):
    return sqlparse.format(query or '', keyword_case='upper', reindent=True, indent_width=2).strip()


def single_source_table(statement):
    """
    (schema, table) of the only table a simple SELECT reads from; schema is None
    unless the name is qualified. Returns None when the statement joins, lists
    several tables, selects from a subquery or is not a SELECT.
    """
    parsed = sqlparse.parse(statement or '')
    if not parsed or parsed[0].get_type() != 'SELECT':
        return None
    stmt = parsed[0]
    if any(token.is_keyword and 'JOIN' in token.normalized for token in stmt.flatten()):
        return None

    from_seen = False
    for token in stmt.tokens:
        if token.is_whitespace:
            continue
        if from_seen:
            if isinstance(token, sql.Identifier) and not isinstance(token.token_first(), sql.Parenthesis):
                return token.get_parent_name(), token.get_real_name()
            return None
        from_seen = token.ttype is T.Keyword and token.normalized == 'FROM'
    return None
