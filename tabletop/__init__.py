"""Flask application factory."""
from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect, generate_csrf
from tabletop.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # CSRF protection (API clients fetch /csrf-token and send it as X-CSRFToken)
    CSRFProtect(app)

    from flask_wtf.csrf import CSRFError

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'Token CSRF inválido o expirado', 'code': 'csrf'}), 400

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Prometheus metrics instrumentation
    from tabletop.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust one reverse proxy (Nginx)
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

    # Initialize database
    init_db(app)

    # Error Handlers
    from tabletop.exceptions import PosError

    @app.errorhandler(PosError)
    def handle_pos_error(error):
        """Typed application errors become {"status": "error", "message", "code"}."""
        from tabletop.database import get_session
        get_session().rollback()
        if error.status_code >= 500:
            app.logger.error(f"PosError [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"PosError [{error.status_code}] {error.code}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found', 'code': 'not_found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed', 'code': 'method_not_allowed'}), 405

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        import traceback
        app.logger.error(f"Unhandled Exception on {request.path}: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error', 'code': 'internal_error'}), 500

    # Register blueprints
    from tabletop.blueprints.menu import menu_bp
    from tabletop.blueprints.discounts import discounts_bp
    from tabletop.blueprints.tables import tables_bp
    from tabletop.blueprints.staff import staff_bp
    from tabletop.blueprints.orders import orders_bp
    from tabletop.blueprints.checkout import checkout_bp
    from tabletop.blueprints.metrics import metrics_bp

    app.register_blueprint(menu_bp)
    app.register_blueprint(discounts_bp)
    app.register_blueprint(tables_bp)
    app.register_blueprint(staff_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(metrics_bp)

    # CLI commands
    from tabletop.cli_commands import init_cli_commands
    init_cli_commands(app)

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok'})

    @app.route('/csrf-token')
    def csrf_token():
        """Token for the X-CSRFToken header of state-changing requests."""
        return jsonify({'csrf_token': generate_csrf()})

    return app
