import json
import logging
import time

import google.generativeai as genai
from google.api_core.exceptions import ResourceExhausted

logger = logging.getLogger(__name__)

MODES = ('generate', 'explain', 'explain_schema')
ACTIONS = {'VIEW_VISUALIZER', 'VIEW_EER'}
FALLBACK_MESSAGE = "Here is the query you requested."

EXPLAIN_PROMPT = """
You are a friendly and expert Senior Database Engineer. Imagine you are explaining this to a junior colleague or a product manager.

Tone: Warm, encouraging, clear, and concise. Use "we" and "you" to make it personal.

Task: Analyze the following SQL query and provide a comprehensive explanation and optimization report.

Query to Analyze: "{prompt}"

Schema Context:
{schema}

Please provide the response in the following Markdown format:

# Query Explanation
[Explain what the query does in simple, clear English.]

# Logic Breakdown
[Step-by-step breakdown of the query logic, e.g., joins, filters, aggregations]

# Performance Analysis
[Analyze potential performance bottlenecks. Be honest but constructive.]

# Optimization Suggestions
[Provide concrete suggestions to improve performance or readability]

# Optimized Query
```sql
[The optimized SQL query, if applicable]
```

Return ONLY the Markdown text. Do NOT wrap it in JSON.
"""

EXPLAIN_SCHEMA_PROMPT = """
You are an expert Database Architect.

Task: Analyze the provided database schema and provide a comprehensive technical overview.

Schema Context:
{schema}

User Request: "{prompt}"

Please provide the response in the following Markdown format:

# Database Overview
[High-level summary of the database's purpose and domain]

# Key Tables & Entities
[List main tables and explain their roles]

# Relationships & Schema Structure
[Explain how tables are connected (foreign keys, logical relationships)]

# Potential Use Cases
[What kind of applications could be built with this?]

Return ONLY the Markdown text. Do NOT wrap it in JSON.
"""

GENERATE_PROMPT = """
You are a helpful and intelligent SQL Assistant. Your goal is to help the user get the data they need quickly and accurately.

Tone: Friendly, professional, and efficient.

Given the following database schema:
{schema}

User Request: "{prompt}"

Respond with a JSON object containing:
- "sql": The valid MySQL query (if applicable, otherwise empty string).
- "message": A friendly, helpful conversational response. If generating SQL, briefly mention it. If the user just says "Hi" or asks a question, answer them naturally.
- "action": One of "VIEW_VISUALIZER", "VIEW_EER", or null. Set this if the user explicitly asks to see a visualization or diagram.
- "visualization": (Optional) Object containing "type" ("bar", "line", "pie"), "xKey" (column name for X-axis), and "yKey" (column name for Y-axis). Include this ONLY if the user asks for a specific visualization configuration.
  - Example: "Show me a line chart of sales over time" -> {{ "type": "line", "xKey": "date", "yKey": "sales" }}
  - Example: "Pie chart of users by country" -> {{ "type": "pie", "xKey": "country", "yKey": "count" }}

Return ONLY the JSON object, no markdown.
"""

PROMPTS = {
    'generate': GENERATE_PROMPT,
    'explain': EXPLAIN_PROMPT,
    'explain_schema': EXPLAIN_SCHEMA_PROMPT,
}


def build_prompt(mode, prompt, schema_context):
    if mode not in PROMPTS:
        raise ValueError(f"Unknown AI mode: {mode}")
    schema = json.dumps(schema_context or {}, indent=2, default=str)
    return PROMPTS[mode].format(prompt=prompt, schema=schema)


def get_model(api_key, model_name):
    genai.configure(api_key=api_key)
    return genai.GenerativeModel(model_name)


def is_rate_limited(error):
    if isinstance(error, ResourceExhausted):
        return True
    if getattr(error, 'code', None) == 429 or getattr(error, 'status', None) == 429:
        return True
    return '429' in str(error)


def generate_with_retry(model, prompt, max_retries=3, sleep=time.sleep):
    """
    Calls model.generate_content, retrying HTTP 429 responses with exponential
    backoff (2s, 4s, ...). At most max_retries attempts; other errors propagate at once.
    """
    retries = 0
    while True:
        try:
            return model.generate_content(prompt)
        except Exception as e:
            if not is_rate_limited(e):
                raise
            retries += 1
            if retries >= max_retries:
                logger.error("Gemini API rate limit persisted after %d attempts", retries)
                raise
            logger.warning("Gemini API 429 hit. Retrying (%d/%d)...", retries, max_retries)
            sleep(2 ** retries)


def strip_code_fences(text):
    return text.replace('```json', '').replace('```', '').strip()


def parse_generation(text):
    """
    Parses the JSON object returned in 'generate' mode. Output that is not a JSON
    object is taken to be plain SQL.
    """
    clean_text = strip_code_fences(text or '')
    try:
        parsed = json.loads(clean_text)
    except ValueError:
        parsed = None
    if not isinstance(parsed, dict):
        return {"sql": clean_text, "action": None, "message": FALLBACK_MESSAGE}

    action = parsed.get('action')
    return {
        "sql": parsed.get('sql') or '',
        "message": parsed.get('message') or '',
        "action": action if action in ACTIONS else None,
        **({"visualization": parsed['visualization']} if isinstance(parsed.get('visualization'), dict) else {}),
    }
