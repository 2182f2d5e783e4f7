"""
Rewards Ledger
Flask application factory
"""
import os
import logging
from flask import Flask
from flask_cors import CORS
from sqlalchemy.exc import OperationalError

from .extensions import db, migrate
from .config import get_config, validate_config
from .utils.logging_config import setup_logging
from .utils.errors import (
    ErrorCode,
    error_response,
    bad_request as bad_request_response,
    not_found as not_found_response,
    internal_error as internal_error_response,
    service_unavailable,
)
from .utils.exceptions import (
    LedgerError,
    NotFoundError,
    ValidationError,
    InsufficientPointsError,
    InvalidStatusTransitionError,
    BookingLookupError,
)

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

    # Dashboards call the read endpoints from the browser
    cors_origins = [o.strip() for o in os.getenv('CORS_ORIGINS', '').split(',') if o.strip()]
    if config_name != 'production':
        cors_origins.extend(['http://localhost:5173', 'http://127.0.0.1:5173'])
    CORS(app, origins=cors_origins, allow_headers=['Content-Type', 'Authorization', 'X-Caller'])

    # Register blueprints
    register_blueprints(app)

    # Register CLI commands
    from .commands import init_app as init_commands
    init_commands(app)

    # Settlement sweep (production or ENABLE_SCHEDULER=true)
    from .utils.scheduler import init_scheduler
    init_scheduler(app)

    # Register error handlers
    register_error_handlers(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        return {'status': 'healthy', 'service': 'rewards-ledger'}

    return app


def register_blueprints(app: Flask) -> None:
    """Register all API blueprints."""
    from .api.points import points_bp
    from .api.referrals import referrals_bp
    from .api.settlement import settlement_bp

    # Webhooks
    from .webhooks.bookings import bookings_webhook_bp
    from .webhooks.reviews import reviews_webhook_bp
    from .webhooks.signups import signups_webhook_bp

    # Core API routes
    app.register_blueprint(points_bp, url_prefix='/api/points')
    app.register_blueprint(referrals_bp, url_prefix='/api/referrals')
    app.register_blueprint(settlement_bp, url_prefix='/api/settlement')

    # Webhook routes
    app.register_blueprint(bookings_webhook_bp, url_prefix='/webhooks')
    app.register_blueprint(reviews_webhook_bp, url_prefix='/webhooks')
    app.register_blueprint(signups_webhook_bp, url_prefix='/webhooks')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""

    @app.errorhandler(400)
    def bad_request(error):
        return bad_request_response('Bad request')

    @app.errorhandler(404)
    def not_found(error):
        return not_found_response('Not found')

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response('Method not allowed', ErrorCode.INVALID_REQUEST, 405, log_error=False)

    @app.errorhandler(500)
    def internal_error(error):
        return internal_error_response()

    @app.errorhandler(LedgerError)
    def ledger_error(error):
        if isinstance(error, NotFoundError):
            return error_response(error.message, error.code, 404, log_error=False)
        if isinstance(error, ValidationError):
            return error_response(error.message, error.code, 400, log_error=False)
        if isinstance(error, InsufficientPointsError):
            return error_response(error.message, error.code, 422,
                                  details={'current': error.current, 'required': error.required})
        if isinstance(error, InvalidStatusTransitionError):
            return error_response(error.message, error.code, 409)
        if isinstance(error, BookingLookupError):
            return service_unavailable(error.message, ErrorCode.BOOKING_LOOKUP_FAILED)
        return error_response(error.message, error.code, 400)

    @app.errorhandler(OperationalError)
    def database_unavailable(error):
        db.session.rollback()
        logger.error(f'Database unavailable: {error}')
        return error_response('Storage temporarily unavailable, please retry', ErrorCode.DATABASE_ERROR, 503)
