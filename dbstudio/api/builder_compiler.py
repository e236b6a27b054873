"""
Join-path compiler for the visual query builder.

Turns a snapshot of table-nodes and column-to-column edges into a single
SELECT statement. The first node anchors the FROM clause; edges are attached
by repeated passes until no pass reaches a new node; anything left
unreachable is cross joined.
"""
import logging
from enum import Enum

from .helpers import quote_identifier

logger = logging.getLogger(__name__)


class EmptyGraphError(ValueError):
    """Raised when compilation is requested for a canvas without tables."""

    def __init__(self, message="Add some tables to the canvas first."):
        super().__init__(message)


class JoinKind(str, Enum):
    INNER = 'INNER'
    LEFT = 'LEFT'
    RIGHT = 'RIGHT'

    @property
    def keyword(self):
        return f"{self.value} JOIN"

    @classmethod
    def parse(cls, value):
        """Accepts 'INNER'/'left'/... as well as the 'JOIN', 'LEFT JOIN' labels of the UI."""
        if isinstance(value, cls):
            return value
        text = " ".join(str(value or '').upper().split())
        if text == 'JOIN':
            text = 'INNER'
        elif text.endswith(' JOIN'):
            text = text[:-len(' JOIN')]
        try:
            return cls(text)
        except ValueError:
            raise ValueError(f"Invalid join type: {value}") from None


class _TableRef:
    __slots__ = ('table', 'qualifier')

    def __init__(self, table, qualifier):
        self.table = table          # as written in FROM/JOIN
        self.qualifier = qualifier  # as written before a column


def _table_refs(nodes, use_aliases):
    refs = {}
    for position, node in enumerate(nodes, start=1):
        quoted = quote_identifier(node.table_name)
        if use_aliases:
            alias = quote_identifier(f"t{position}")
            refs[node.id] = _TableRef(f"{quoted} AS {alias}", alias)
        else:
            refs[node.id] = _TableRef(quoted, quoted)
    return refs


def compile_query(nodes, edges, join_kind=JoinKind.INNER, use_aliases=False):
    """
    Compiles a graph snapshot into one SQL statement.

    Args:
        nodes: table-nodes in snapshot order (anything with id, table_name, selected_columns).
        edges: join edges in insertion order (source_node_id, source_column,
               target_node_id, target_column).
        join_kind: JoinKind or its name, applied to every join clause.
        use_aliases: emit `t1`, `t2`, ... per node so self-joins are unambiguous.

    Returns:
        The statement, terminated by a single semicolon.

    Raises:
        EmptyGraphError: if there are no nodes.
    """
    nodes = list(nodes)
    edges = list(edges)
    if not nodes:
        raise EmptyGraphError()
    join_kind = JoinKind.parse(join_kind)

    nodes_by_id = {}
    for node in nodes:
        nodes_by_id.setdefault(node.id, node)
    refs = _table_refs(nodes, use_aliases)

    # --- 1. Projection list ---
    select_parts = []
    for node in nodes:
        qualifier = refs[node.id].qualifier
        for column in node.selected_columns:
            select_parts.append(f"{qualifier}.{quote_identifier(column)}")
    if not select_parts:
        select_parts.append('*')

    # --- 2. Anchor ---
    anchor = nodes[0]
    visited = {anchor.id}

    # --- 3. Attach joins until a full pass reaches no new node ---
    join_clauses = []
    used_edges = set()
    changed = True
    while changed:
        changed = False
        for index, edge in enumerate(edges):
            if index in used_edges:
                continue
            source = nodes_by_id.get(edge.source_node_id)
            target = nodes_by_id.get(edge.target_node_id)
            if source is None or target is None:
                continue

            source_visited = source.id in visited
            target_visited = target.id in visited
            if source_visited == target_visited:
                continue

            if source_visited:
                known, known_col, joined, joined_col = source, edge.source_column, target, edge.target_column
            else:
                known, known_col, joined, joined_col = target, edge.target_column, source, edge.source_column

            join_clauses.append(
                f"{join_kind.keyword} {refs[joined.id].table} "
                f"ON {refs[known.id].qualifier}.{quote_identifier(known_col)} = "
                f"{refs[joined.id].qualifier}.{quote_identifier(joined_col)}"
            )
            visited.add(joined.id)
            used_edges.add(index)
            changed = True

    # --- 4. Disconnected components ---
    cross_joined = []
    for node in nodes:
        if node.id not in visited:
            cross_joined.append(refs[node.id].table)
            visited.add(node.id)

    sql = "SELECT\n  " + ",\n  ".join(select_parts) + "\nFROM\n  " + refs[anchor.id].table
    for clause in join_clauses:
        sql += "\n" + clause
    for table in cross_joined:
        sql += ", " + table
    sql += ";"

    logger.debug("Compiled builder graph (%d nodes, %d edges, %d joins):\n%s",
                 len(nodes), len(edges), len(join_clauses), sql)
    return sql
