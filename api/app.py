#!/usr/bin/env python3
import logging
import os
import sys
from typing import Optional
from flask import Flask
from flask_cors import CORS
from waitress import serve

from config.app_config import AppConfig, get_config, set_config
from core.dependency_container import initialize_container, get_service
from core.exceptions import ProvisioningError
from core.logging_config import setup_structured_logging, get_logger
from .routes.account_routes import account_bp
from .middleware.error_handler import ErrorHandler

logger = get_logger(__name__)

def create_app(config: Optional[AppConfig] = None) -> Flask:
    """
    Creates and configures the Flask application serving the provisioning API.
    """
    if config is None:
        config = get_config()
    else:
        set_config(config)
    app = Flask(__name__)
    app.config['PROVISIONER'] = config

    CORS(app)

    initialize_container(config)
    ErrorHandler.init_app(app)

    app.register_blueprint(account_bp, url_prefix='/api/accounts')

    @app.route("/api/health")
    def health_check():
        return {"status": "healthy", "message": "Credential provisioner API is running"}

    return app

def report_startup_consistency() -> None:
    """Log the state of every local document pair. Mismatches are reported, not repaired."""
    try:
        reports = get_service('account_service').check_consistency()
    except ProvisioningError as e:
        logger.error("Startup consistency check failed", error=str(e))
        return
    for report in reports:
        if report["consistent"]:
            logger.info("Account documents consistent", protocol=report["protocol"], accounts=report["rosterCount"])

def main() -> None:
    if os.geteuid() != 0:
        print("API server must be run as root to manage proxy documents and firewall rules.")
        sys.exit(1)

    config = get_config()
    setup_structured_logging(config.monitoring.log_level)
    app = create_app(config)
    report_startup_consistency()

    def calculate_optimal_threads() -> int:
        """Determine a sensible Waitress thread count based on CPU cores."""
        cores = os.cpu_count() or 1
        return max(4, min(32, cores * 2))

    print(f"🚀 Starting credential provisioner API on http://{config.server.host}:{config.server.port}")
    print(f"📊 Health Check: http://{config.server.host}:{config.server.port}/api/health")

    logging.getLogger('waitress.queue').setLevel(logging.ERROR)

    serve(app, host=config.server.host, port=config.server.port, threads=calculate_optimal_threads())


if __name__ == "__main__":
    main()
