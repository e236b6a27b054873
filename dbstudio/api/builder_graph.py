"""
Graph model of the visual query builder: table-nodes placed on the canvas and
column-to-column join edges drawn between them.
"""
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum

from .builder_compiler import JoinKind, compile_query

logger = logging.getLogger(__name__)


class EndpointRole(str, Enum):
    SOURCE = 'source'
    TARGET = 'target'


def parse_handle(handle, default_role):
    """
    Splits a connection handle id such as 'manager_id-target' into
    ('manager_id', EndpointRole.TARGET). Bare column names keep default_role.
    """
    handle = '' if handle is None else str(handle)
    for role in EndpointRole:
        suffix = f"-{role.value}"
        if handle.endswith(suffix) and len(handle) > len(suffix):
            return handle[:-len(suffix)], role
    return handle, default_role


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    type: str = ''
    key: str = ''

    @classmethod
    def coerce(cls, value):
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls(value)
        return cls(str(value.get('name', '')), str(value.get('type') or ''), str(value.get('key') or ''))

    def to_dict(self):
        return {"name": self.name, "type": self.type, "key": self.key}


@dataclass
class TableNode:
    id: str
    table_name: str
    available_columns: tuple = ()
    selected_columns: list = field(default_factory=list)

    def copy(self):
        return TableNode(self.id, self.table_name, self.available_columns, list(self.selected_columns))

    def to_dict(self):
        return {
            "id": self.id,
            "tableName": self.table_name,
            "columns": [col.to_dict() for col in self.available_columns],
            "selectedColumns": list(self.selected_columns),
        }


@dataclass(frozen=True)
class JoinEdge:
    id: str
    source_node_id: str
    source_column: str
    target_node_id: str
    target_column: str
    source_role: EndpointRole = EndpointRole.SOURCE
    target_role: EndpointRole = EndpointRole.TARGET

    @classmethod
    def from_handles(cls, edge_id, source_node_id, source_handle, target_node_id, target_handle):
        source_column, source_role = parse_handle(source_handle, EndpointRole.SOURCE)
        target_column, target_role = parse_handle(target_handle, EndpointRole.TARGET)
        return cls(edge_id, source_node_id, source_column, target_node_id, target_column,
                   source_role, target_role)

    def touches(self, node_id):
        return self.source_node_id == node_id or self.target_node_id == node_id

    def to_dict(self):
        return {
            "id": self.id,
            "source": self.source_node_id,
            "sourceHandle": f"{self.source_column}-{self.source_role.value}",
            "target": self.target_node_id,
            "targetHandle": f"{self.target_column}-{self.target_role.value}",
        }


def _new_id(prefix):
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


class QueryGraph:
    """Authoritative, mutable set of table-nodes and join edges for one builder canvas."""

    def __init__(self):
        self._nodes = {}  # insertion ordered
        self._edges = {}

    def __len__(self):
        return len(self._nodes)

    def get_node(self, node_id):
        return self._nodes.get(node_id)

    def add_table(self, table_name, available_columns=(), node_id=None):
        """Places a new node for table_name; the same table may be placed any number of times."""
        node_id = node_id or _new_id(table_name)
        while node_id in self._nodes:
            node_id = _new_id(table_name)
        columns = tuple(ColumnInfo.coerce(col) for col in (available_columns or ()))
        self._nodes[node_id] = TableNode(node_id, table_name, columns)
        logger.debug("Added node %s for table %s", node_id, table_name)
        return node_id

    def toggle_column(self, node_id, column_name):
        node = self._nodes.get(node_id)
        if node is None:
            return None
        if column_name in node.selected_columns:
            node.selected_columns.remove(column_name)
        else:
            node.selected_columns.append(column_name)
        return list(node.selected_columns)

    def delete_node(self, node_id):
        """Removes the node and every edge touching it."""
        if self._nodes.pop(node_id, None) is None:
            return False
        dropped = [edge_id for edge_id, edge in self._edges.items() if edge.touches(node_id)]
        for edge_id in dropped:
            del self._edges[edge_id]
        logger.debug("Deleted node %s and %d edge(s)", node_id, len(dropped))
        return True

    def connect(self, source_node_id, source_column, target_node_id, target_column, edge_id=None):
        """
        Draws an edge between two column handles. Columns may be given bare or as
        handle ids ('id-source'). Duplicates, self-loops and unknown columns are accepted.
        """
        edge_id = edge_id or _new_id('edge')
        while edge_id in self._edges:
            edge_id = _new_id('edge')
        self._edges[edge_id] = JoinEdge.from_handles(
            edge_id, source_node_id, source_column, target_node_id, target_column)
        return edge_id

    def disconnect(self, edge_id):
        return self._edges.pop(edge_id, None) is not None

    def clear(self):
        self._nodes.clear()
        self._edges.clear()

    def snapshot(self):
        """Returns (nodes, edges) in insertion order, detached from later mutation."""
        return (tuple(node.copy() for node in self._nodes.values()),
                tuple(self._edges.values()))

    def compile(self, join_kind=JoinKind.INNER, use_aliases=False):
        nodes, edges = self.snapshot()
        return compile_query(nodes, edges, join_kind, use_aliases=use_aliases)

    def to_dict(self):
        nodes, edges = self.snapshot()
        return {"nodes": [node.to_dict() for node in nodes],
                "edges": [edge.to_dict() for edge in edges]}

    @classmethod
    def from_dict(cls, payload):
        """
        Rebuilds a graph from the canvas JSON: nodes carry id, tableName (or label),
        columns, selectedColumns; edges carry source, sourceHandle, target, targetHandle.
        """
        graph = cls()
        for raw in payload.get('nodes') or []:
            table_name = raw.get('tableName') or raw.get('label')
            if not table_name:
                raise ValueError(f"Node is missing a table name: {raw}")
            node_id = graph.add_table(table_name, raw.get('columns') or (), node_id=raw.get('id'))
            selected = graph.get_node(node_id).selected_columns
            for column in raw.get('selectedColumns') or []:
                if column not in selected:
                    selected.append(column)
        for raw in payload.get('edges') or []:
            graph.connect(raw.get('source'),
                          raw.get('sourceHandle', raw.get('sourceColumn')),
                          raw.get('target'),
                          raw.get('targetHandle', raw.get('targetColumn')),
                          edge_id=raw.get('id'))
        return graph


class BuilderSessionNotFound(KeyError):
    pass


class QueryGraphStore:
    """
    Registry of builder canvases keyed by session id.

    Sessions idle for longer than `ttl` seconds are evicted, and the least
    recently used ones are dropped once `max_sessions` is exceeded.
    """

    def __init__(self, ttl=3600, max_sessions=1000, clock=time.monotonic):
        self.ttl = ttl
        self.max_sessions = max_sessions
        self._clock = clock
        self._graphs = {}  # session id -> [graph, last access], oldest access first
        self._lock = threading.Lock()

    def _prune(self, now):
        expired = [sid for sid, (_, last_access) in self._graphs.items() if now - last_access > self.ttl]
        for session_id in expired:
            del self._graphs[session_id]
        while len(self._graphs) > self.max_sessions:
            expired.append(next(iter(self._graphs)))
            del self._graphs[expired[-1]]
        if expired:
            logger.info("Evicted %d idle builder session(s)", len(expired))

    def create(self):
        session_id = uuid.uuid4().hex
        with self._lock:
            now = self._clock()
            self._graphs[session_id] = [QueryGraph(), now]
            self._prune(now)
        logger.info("Created builder session %s", session_id)
        return session_id

    def get(self, session_id):
        with self._lock:
            now = self._clock()
            self._prune(now)
            entry = self._graphs.pop(session_id, None)
            if entry is not None:
                entry[1] = now
                self._graphs[session_id] = entry
        if entry is None:
            raise BuilderSessionNotFound(session_id)
        return entry[0]

    def discard(self, session_id):
        with self._lock:
            removed = self._graphs.pop(session_id, None)
        if removed is None:
            raise BuilderSessionNotFound(session_id)
        logger.info("Discarded builder session %s", session_id)

    def __len__(self):
        with self._lock:
            return len(self._graphs)
