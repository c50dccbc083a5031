"""Flask application factory."""
from flask import Flask, request, jsonify
from marketplace.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.json.sort_keys = False

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Flask-Mail for order notifications
    from marketplace.services.notification_service import init_mail
    init_mail(app)

    # Redis cache (promotion listings)
    from marketplace.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from marketplace.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=1,
            x_proto=1,
            x_host=1,
            x_port=1,
            x_prefix=0
        )

    init_db(app)

    from marketplace.middleware import load_current_user

    @app.before_request
    def before_request_handler():
        """Load the current user for each request."""
        load_current_user()

    # Error Handlers
    from marketplace.exceptions import MarketplaceError

    @app.errorhandler(MarketplaceError)
    def handle_marketplace_error(error):
        """Render application exceptions as JSON with their status code."""
        if error.status_code >= 500:
            app.logger.error(f"MarketplaceError [{error.status_code}] {error.code}: {error.message}")
        else:
            app.logger.warning(f"MarketplaceError [{error.status_code}] {error.code}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'code': 'NOT_FOUND', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'code': 'METHOD_NOT_ALLOWED', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        import traceback
        app.logger.error(f"Unhandled Exception on {request.method} {request.path}: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'code': 'INTERNAL_ERROR', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from marketplace.blueprints.main import main_bp
    from marketplace.blueprints.cart import cart_bp
    from marketplace.blueprints.orders import orders_bp
    from marketplace.blueprints.delivery import delivery_bp
    from marketplace.blueprints.promotions import promotions_bp
    from marketplace.blueprints.metrics import metrics_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(delivery_bp)
    app.register_blueprint(promotions_bp)
    app.register_blueprint(metrics_bp)

    from marketplace.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
