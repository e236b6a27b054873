import logging

from flask import Blueprint, current_app, jsonify, request

from .ai_utils import MODES, build_prompt, generate_with_retry, get_model, parse_generation
from .helpers import json_error

logger = logging.getLogger(__name__)

ai_bp = Blueprint('ai', __name__)


@ai_bp.route('/api/ai', methods=['POST'])
def ask_ai():
    """
    Natural-language assistant. Modes:
      generate (default): returns {sql, message, action, visualization?}
      explain / explain_schema: returns {explanation} as markdown
    """
    payload = request.get_json(silent=True) or {}
    prompt = payload.get('prompt')
    mode = payload.get('mode') or 'generate'
    if not prompt or not str(prompt).strip():
        return json_error("Prompt is required", 400)
    if mode not in MODES:
        return json_error(f"Unknown mode: {mode}", 400)

    api_key = current_app.config.get('GEMINI_API_KEY')
    if not api_key:
        return json_error("GEMINI_API_KEY not found in environment variables", 500)

    try:
        model = get_model(api_key, current_app.config['GEMINI_MODEL'])
        result = generate_with_retry(model, build_prompt(mode, prompt, payload.get('schemaContext')),
                                     max_retries=current_app.config['AI_MAX_RETRIES'])
        text = result.text
    except Exception as ex:
        logger.error("AI generation failed (%s mode): %s", mode, ex)
        return json_error(str(ex), 500)

    if mode in ('explain', 'explain_schema'):
        return jsonify({"success": True, "explanation": text}), 200
    return jsonify({"success": True, **parse_generation(text)}), 200
