# FileFerry - Opaque File Upload and Download Service
import logging
import sys
from typing import Optional

from flask import Flask, jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from fileferry.api.transfers import FILE_NAME_HEADER, UPLOAD_LENGTH_HEADER, transfers_bp
from fileferry.config.app_config import AppSettings, load_settings
from fileferry.config.version import get_version
from fileferry.context import EXTENSION_KEY, TransferContext, get_context
from fileferry.services.storage.exceptions import BlockedError, TransferError
from fileferry.services.storage.service import StorageService


def configure_logging(level: str) -> None:
    """Send all log records to stdout in one format."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    handler.setFormatter(formatter)

    # Get the root logger and clear any existing handlers to avoid duplicates
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # Silence per-request boto logs
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('s3transfer').setLevel(logging.WARNING)


def create_app(settings: Optional[AppSettings] = None, storage: Optional[StorageService] = None,
               configure_logs: bool = True) -> Flask:
    """
    Build the Flask application.

    Args:
        settings: Application settings (read from the environment when omitted)
        storage: Pre-built storage facade, mainly for tests
        configure_logs: Whether to install the stdout log handler

    Returns:
        Flask: The configured application
    """
    settings = settings or load_settings()
    if configure_logs:
        configure_logging(settings.log_level)

    app = Flask(__name__)

    # Trust X-Forwarded-* from the configured number of reverse proxies so
    # request.remote_addr is the client address the blocklist checks.
    if settings.proxy_fix_x_for > 0:
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=settings.proxy_fix_x_for,
            x_proto=1,
            x_host=1,
            x_prefix=1,
        )

    storage = storage or StorageService(settings.storage)
    app.extensions[EXTENSION_KEY] = TransferContext(settings=settings, storage=storage)

    Limiter(
        get_remote_address,
        app=app,
        default_limits=[settings.rate_limits],
        storage_uri='memory://',
    )

    app.register_blueprint(transfers_bp)

    @app.before_request
    def reject_blocked_ips():
        if get_context().settings.is_blocked(request.remote_addr):
            raise BlockedError()

    @app.after_request
    def add_cors_headers(response):
        response.headers['Access-Control-Allow-Origin'] = get_context().settings.cors_allow_origin
        response.headers['Access-Control-Allow-Methods'] = 'GET, POST, PUT, OPTIONS'
        response.headers['Access-Control-Allow-Headers'] = (
            f"Content-Type, Range, {FILE_NAME_HEADER}, {UPLOAD_LENGTH_HEADER}"
        )
        response.headers['Access-Control-Expose-Headers'] = (
            f"{FILE_NAME_HEADER}, Content-Length, Content-Range, Content-Disposition"
        )
        return response

    @app.errorhandler(TransferError)
    def handle_transfer_error(error):
        if error.is_server_error:
            app.logger.error(f"{type(error).__name__} on {request.method} {request.path}: {error}",
                             exc_info=error)
        return jsonify({'error': str(error)}), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({'error': error.description}), error.code

    app.logger.info(f"=== FileFerry {get_version()} Starting Up ===")
    app.logger.info(f"Storage: {storage}, max upload size {settings.storage.max_upload_size} bytes")
    if settings.blocked_ips:
        app.logger.info(f"Blocking {len(settings.blocked_ips)} IP address(es)")

    return app


def main():
    settings = load_settings()
    app = create_app(settings)
    app.run(host=settings.host, port=settings.port, threaded=True)


if __name__ == '__main__':
    main()
