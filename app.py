# app.py
"""
Flask Application Factory for the Contact & Newsletter Notification API

This application factory wires together:
- Explicit settings assembled once at startup
- Logging compatible with systemd journal (stderr fallback)
- CORS restricted to the frontend origins
- Per-IP fixed-window rate limiting with an injectable store
- Templated notification emails submitted concurrently over SMTP
- JSON error handling for every failure path
"""

import time
import asyncio
import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from flask import Flask, jsonify, g, request
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.exceptions import HTTPException

from api.contact import contact_bp
from config.settings import Settings
from core.exceptions import MailTransportError, NotificationError
from core.rate_limiter import RateLimiter, create_window_store
from core.template_engine import NotificationTemplateEngine
from middleware.security import security_headers
from services.mailer import MailTransport, SMTPMailTransport
from services.notifications import NotificationDispatcher


def setup_logging(app: Flask, settings: Settings) -> None:
    """
    Configure logging for systemd journal integration

    Handlers go on the root logger so module loggers (core.*, services.*, api.*)
    share the app's output.
    """
    # Remove default Flask handlers to avoid duplicate logs
    app.logger.handlers.clear()

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, '_contact_api', False):
            root_logger.removeHandler(handler)

    journal_formatter = logging.Formatter(
        fmt='%(name)s[%(process)d]: %(levelname)s %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    detailed_formatter = logging.Formatter(
        fmt='%(asctime)s %(name)-20s %(levelname)-8s %(funcName)-15s:%(lineno)-4d %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    root_logger.setLevel(log_level)
    app.logger.setLevel(log_level)

    handlers = []

    # Systemd journal handler (primary for production)
    try:
        import systemd.journal
        journal_handler = systemd.journal.JournalHandler()
        journal_handler.setFormatter(journal_formatter)
        handlers.append(journal_handler)
    except ImportError:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(detailed_formatter if settings.development_mode else journal_formatter)
        handlers.append(stream_handler)

    # File handler for detailed debugging (development only)
    if settings.development_mode:
        log_dir = Path('logs')
        log_dir.mkdir(exist_ok=True, parents=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / 'contact-api.log',
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(detailed_formatter)
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)

    for handler in handlers:
        handler._contact_api = True
        root_logger.addHandler(handler)

    # Suppress verbose third-party logs in production
    if not settings.development_mode:
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('aiosmtplib').setLevel(logging.WARNING)


def configure_cors(app: Flask, settings: Settings) -> None:
    """
    Only the frontend origins may call the API from a browser
    """
    CORS(app,
         origins=settings.allowed_origins,
         methods=['POST', 'OPTIONS', 'GET'],
         allow_headers=['Content-Type', 'Authorization'])

    app.logger.info(f"CORS origins: {', '.join(settings.allowed_origins)}")


def configure_error_handlers(app: Flask, settings: Settings) -> None:
    """
    Every error response is JSON with at least an 'error' field
    """
    @app.errorhandler(NotificationError)
    def notification_error(error):
        if isinstance(error, MailTransportError):
            app.logger.error(f"Mail transport failure on {request.path}: {error.internal_detail}")
        return jsonify(error.to_dict(include_details=settings.development_mode)), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Endpoint not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Endpoint not found'}), 404

    @app.errorhandler(413)
    def payload_too_large(error):
        return jsonify({'error': 'Request body too large'}), 413

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Handle unexpected exceptions"""
        if isinstance(e, HTTPException):
            return jsonify({'error': e.name}), e.code

        app.logger.error(f"Server error: {e}", exc_info=True)
        body = {'error': 'Internal server error'}
        if settings.development_mode:
            body['details'] = str(e)
        return jsonify(body), 500


def configure_request_middleware(app: Flask) -> None:
    """
    Configure request/response middleware for security and monitoring
    """
    @app.before_request
    def before_request():
        g.start_time = time.perf_counter()

    @app.after_request
    def after_request(response):
        response = security_headers(response)

        if hasattr(g, 'start_time'):
            duration = (time.perf_counter() - g.start_time) * 1000
            if duration > app.config.get('SLOW_REQUEST_THRESHOLD', 5000):
                app.logger.warning(f"Slow request ({duration:.0f}ms): {request.method} {request.path}")

        return response


def verify_mail_transport(app: Flask, transport: MailTransport) -> bool:
    """
    Readiness check against the SMTP server; logged, never a startup gate
    """
    try:
        ready = asyncio.run(transport.verify())
    except Exception as e:
        app.logger.error(f"SMTP readiness check raised: {e}")
        ready = False

    if not ready:
        app.logger.warning("SMTP server not reachable at startup; submissions will fail until it is")
    return ready


def create_app(settings: Optional[Settings] = None,
               transport: Optional[MailTransport] = None,
               rate_limiter: Optional[RateLimiter] = None,
               dispatcher: Optional[NotificationDispatcher] = None) -> Flask:
    """
    Flask application factory

    Args:
        settings: Explicit configuration (defaults to Settings.from_env())
        transport: Mail transport (defaults to SMTPMailTransport)
        rate_limiter: Rate limiter (defaults to one backed by RATELIMIT_STORAGE_URL)
        dispatcher: Fully built dispatcher, overrides the three collaborators above

    Returns:
        Configured Flask application instance
    """
    settings = settings or Settings.from_env()

    app = Flask(__name__)
    app.config.update({
        'SETTINGS': settings,
        'MAX_CONTENT_LENGTH': settings.max_content_length,
        'DEBUG': settings.development_mode,
    })

    # Real client IPs for rate limiting behind nginx/load balancers
    if settings.trust_proxy:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    setup_logging(app, settings)
    app.logger.info(f"Starting Contact API in {settings.environment} mode")

    if dispatcher is None:
        transport = transport or SMTPMailTransport(settings)
        rate_limiter = rate_limiter or RateLimiter(create_window_store(settings.ratelimit_storage_url))
        dispatcher = NotificationDispatcher(
            settings=settings,
            renderer=NotificationTemplateEngine(settings),
            transport=transport,
            rate_limiter=rate_limiter,
        )
    app.extensions['notification_dispatcher'] = dispatcher

    configure_cors(app, settings)
    app.register_blueprint(contact_bp)
    configure_error_handlers(app, settings)
    configure_request_middleware(app)

    if settings.verify_on_startup:
        app.config['SMTP_READY'] = verify_mail_transport(app, dispatcher.transport)

    app.logger.info("Flask application factory completed successfully")
    return app


if __name__ == '__main__':
    # Development server; run under gunicorn in production: gunicorn "app:create_app()"
    settings = Settings.from_env()
    app = create_app(settings)

    app.logger.info(f"Contact API running on port {settings.port}")
    app.logger.info(f"Health check: http://localhost:{settings.port}/api/health")
    app.run(
        host='0.0.0.0',
        port=settings.port,
        debug=settings.development_mode,
        use_reloader=False
    )
