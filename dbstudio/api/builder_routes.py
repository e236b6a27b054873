import logging

from flask import Blueprint, current_app, jsonify, request

from .builder_compiler import JoinKind
from .builder_graph import BuilderSessionNotFound, QueryGraph, QueryGraphStore
from .helpers import json_error

logger = logging.getLogger(__name__)

builder_bp = Blueprint('builder', __name__, url_prefix='/api/builder')

STORE_KEY = 'query_builder'


def _register_store(state):
    config = state.app.config
    state.app.extensions.setdefault(STORE_KEY, QueryGraphStore(
        ttl=config.get('BUILDER_SESSION_TTL', 3600),
        max_sessions=config.get('BUILDER_MAX_SESSIONS', 1000),
    ))


builder_bp.record_once(_register_store)


def _store():
    return current_app.extensions[STORE_KEY]


def _payload():
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _compile(graph, payload):
    try:
        join_kind = JoinKind.parse(payload.get('joinKind') or payload.get('joinType') or 'INNER')
        sql = graph.compile(join_kind, use_aliases=bool(payload.get('useAliases')))
    except ValueError as ve:  # EmptyGraphError included
        return json_error(str(ve), 400)
    logger.info("Generated builder SQL (%s join, %d tables)", join_kind.value, len(graph))
    return jsonify({"success": True, "sql": sql}), 200


@builder_bp.errorhandler(BuilderSessionNotFound)
def _session_not_found(error):
    return json_error(f"Unknown builder session: {error.args[0]}", 404)


@builder_bp.route('/sessions', methods=['POST'])
def create_session():
    session_id = _store().create()
    return jsonify({"success": True, "sessionId": session_id}), 201


@builder_bp.route('/sessions/<session_id>', methods=['GET'])
def get_session(session_id):
    graph = _store().get(session_id)
    return jsonify({"success": True, **graph.to_dict()}), 200


@builder_bp.route('/sessions/<session_id>', methods=['DELETE'])
def discard_session(session_id):
    _store().discard(session_id)
    return jsonify({"success": True}), 200


@builder_bp.route('/sessions/<session_id>/tables', methods=['POST'])
def add_table(session_id):
    graph = _store().get(session_id)
    payload = _payload()
    table_name = payload.get('tableName')
    if not table_name:
        return json_error("Missing 'tableName'", 400)
    columns = payload.get('columns') or []
    if not isinstance(columns, list):
        return json_error("'columns' must be a list", 400)
    node_id = graph.add_table(table_name, columns)
    return jsonify({"success": True, "nodeId": node_id}), 201


@builder_bp.route('/sessions/<session_id>/tables/<node_id>/toggle', methods=['POST'])
def toggle_column(session_id, node_id):
    graph = _store().get(session_id)
    column = _payload().get('column')
    if not column:
        return json_error("Missing 'column'", 400)
    selected = graph.toggle_column(node_id, column)
    return jsonify({"success": True, "selectedColumns": selected or []}), 200


@builder_bp.route('/sessions/<session_id>/tables/<node_id>', methods=['DELETE'])
def delete_table(session_id, node_id):
    graph = _store().get(session_id)
    graph.delete_node(node_id)
    return jsonify({"success": True}), 200


@builder_bp.route('/sessions/<session_id>/edges', methods=['POST'])
def connect(session_id):
    graph = _store().get(session_id)
    payload = _payload()
    source, target = payload.get('source'), payload.get('target')
    source_handle = payload.get('sourceHandle', payload.get('sourceColumn'))
    target_handle = payload.get('targetHandle', payload.get('targetColumn'))
    if not (source and target and source_handle and target_handle):
        return json_error("Edge requires source, sourceHandle, target and targetHandle", 400)
    edge_id = graph.connect(source, source_handle, target, target_handle)
    return jsonify({"success": True, "edgeId": edge_id}), 201


@builder_bp.route('/sessions/<session_id>/edges/<edge_id>', methods=['DELETE'])
def disconnect(session_id, edge_id):
    graph = _store().get(session_id)
    graph.disconnect(edge_id)
    return jsonify({"success": True}), 200


@builder_bp.route('/sessions/<session_id>/clear', methods=['POST'])
def clear_canvas(session_id):
    _store().get(session_id).clear()
    return jsonify({"success": True}), 200


@builder_bp.route('/sessions/<session_id>/compile', methods=['POST'])
def compile_session(session_id):
    graph = _store().get(session_id)
    return _compile(graph, _payload())


@builder_bp.route('/compile', methods=['POST'])
def compile_canvas():
    """Compiles a canvas sent whole in the request body: {nodes, edges, joinKind, useAliases}."""
    payload = _payload()
    try:
        graph = QueryGraph.from_dict(payload)
    except (ValueError, AttributeError, TypeError) as ex:
        return json_error(f"Invalid canvas definition: {ex}", 400)
    return _compile(graph, payload)

