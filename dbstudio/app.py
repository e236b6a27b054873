import logging
import os

from dotenv import load_dotenv
from flask import Flask
from flask_cors import CORS

from .api.ai_routes import ai_bp
from .api.builder_routes import builder_bp
from .api.connection_routes import connection_bp
from .api.dml_routes import dml_bp
from .api.import_routes import import_bp
from .api.query_routes import query_bp
from .api.schema_routes import schema_bp
from .api.server_routes import server_bp

BLUEPRINTS = (connection_bp, schema_bp, query_bp, import_bp, dml_bp, server_bp, ai_bp, builder_bp)


def configure_logging(level):
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def create_app(config=None):
    """Application factory. Settings come from the environment (.env supported), then `config`."""
    load_dotenv()

    app = Flask(__name__)
    app.config.from_mapping(
        GEMINI_API_KEY=os.getenv('GEMINI_API_KEY'),
        GEMINI_MODEL=os.getenv('GEMINI_MODEL', 'gemini-2.0-flash'),
        AI_MAX_RETRIES=int(os.getenv('AI_MAX_RETRIES', '3')),
        LOG_LEVEL=os.getenv('LOG_LEVEL', 'INFO').upper(),
        MAX_CONTENT_LENGTH=int(os.getenv('MAX_UPLOAD_MB', '50')) * 1024 * 1024,
        BUILDER_SESSION_TTL=int(os.getenv('BUILDER_SESSION_TTL', '3600')),
        BUILDER_MAX_SESSIONS=int(os.getenv('BUILDER_MAX_SESSIONS', '1000')),
    )
    if config:
        app.config.update(config)

    configure_logging(app.config['LOG_LEVEL'])
    CORS(app)

    for blueprint in BLUEPRINTS:
        app.register_blueprint(blueprint)
    return app


def main():
    app = create_app()
    app.run(host=os.getenv('HOST', '0.0.0.0'), port=int(os.getenv('PORT', '5000')),
            debug=os.getenv('FLASK_DEBUG', '0') == '1')


if __name__ == '__main__':
    main()
