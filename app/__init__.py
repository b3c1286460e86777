"""
LashClub Membership Platform
Flask application factory
"""
import os
import re
import logging
from flask import Flask
from flask_cors import CORS

from .extensions import db, migrate
from .config import get_config, validate_config
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_name: str = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration environment (development, production, testing)

    Returns:
        Configured Flask application
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    # Setup logging before anything else
    setup_logging()

    validate_config(config_name)

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Initialize caching (Redis with SimpleCache fallback)
    from .utils.cache import init_cache
    init_cache(app)

    # Configure CORS - allow storefront origins
    cors_origins = [
        'http://localhost:3000',
        'http://127.0.0.1:3000',
    ]
    storefront_url = os.getenv('STOREFRONT_URL')
    if storefront_url:
        cors_origins.append(storefront_url.rstrip('/'))
    # Allow preview deployments outside production
    if config_name != 'production':
        cors_origins.append(re.compile(r'https://.*\.vercel\.app'))
    CORS(app, origins=cors_origins, supports_credentials=True, allow_headers=['Content-Type', 'Authorization'])

    # Register blueprints
    register_blueprints(app)

    # Register CLI commands
    from .commands import init_app as init_commands
    init_commands(app)

    # Background scheduler for the daily usage-window sweep (production only)
    from .utils.scheduler import init_scheduler
    init_scheduler(app)

    # Register error handlers
    register_error_handlers(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        return {'status': 'healthy', 'service': 'lashclub'}

    return app


def register_blueprints(app: Flask) -> None:
    """Register all API blueprints."""
    from .api.membership import membership_bp
    from .api.points import points_bp
    from .api.admin import admin_bp
    from .webhooks.stripe import stripe_webhook_bp

    # Membership and pricing routes
    app.register_blueprint(membership_bp, url_prefix='/api/membership')

    # Points (Loyalty System)
    app.register_blueprint(points_bp, url_prefix='/api/points')

    # Admin API routes
    app.register_blueprint(admin_bp, url_prefix='/api/admin')

    # Webhook routes
    app.register_blueprint(stripe_webhook_bp, url_prefix='/webhook/stripe')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from .utils.errors import error_response, bad_request, not_found, internal_error, ErrorCode
    from .utils.exceptions import LashClubError

    @app.errorhandler(LashClubError)
    def handle_domain_error(error):
        db.session.rollback()
        return error_response(error.message, error.code, error.status_code)

    @app.errorhandler(400)
    def handle_bad_request(error):
        return bad_request('Bad request')

    @app.errorhandler(404)
    def handle_not_found(error):
        return not_found('Not found')

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return error_response('Method not allowed', ErrorCode.INVALID_REQUEST, 405, log_error=False)

    @app.errorhandler(500)
    def handle_internal_error(error):
        db.session.rollback()
        return internal_error('Internal server error')
