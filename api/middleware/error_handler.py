from flask import jsonify
from core.exceptions import (
    ProvisioningError,
    InvalidProtocol,
    DuplicateCredential,
    NotFound,
    Forbidden,
    PersistenceError,
    FirewallError,
    RemoteStoreError,
    MissingDeviceBinding,
    ValidationError,
    ConfigurationError
)
from core.logging_config import get_logger

logger = get_logger(__name__)

class ErrorHandler:
    """
    Centralized error handling for the provisioning API.
    """

    @staticmethod
    def init_app(app) -> None:
        """Initialize error handlers with Flask app."""

        @app.errorhandler(InvalidProtocol)
        def handle_invalid_protocol(e):
            return jsonify({
                'error': 'Invalid account type',
                'message': str(e)
            }), 400

        @app.errorhandler(ValidationError)
        def handle_validation_error(e):
            return jsonify({
                'error': 'Validation error',
                'message': str(e)
            }), 400

        @app.errorhandler(MissingDeviceBinding)
        def handle_missing_device(e):
            return jsonify({
                'error': 'Missing device binding',
                'message': str(e)
            }), 400

        @app.errorhandler(Forbidden)
        def handle_forbidden(e):
            return jsonify({
                'error': 'Forbidden',
                'message': str(e)
            }), 403

        @app.errorhandler(NotFound)
        def handle_not_found_credential(e):
            return jsonify({
                'error': 'Account not found',
                'message': str(e)
            }), 404

        @app.errorhandler(DuplicateCredential)
        def handle_duplicate(e):
            return jsonify({
                'error': 'Account already exists',
                'message': str(e)
            }), 409

        @app.errorhandler(PersistenceError)
        def handle_persistence_error(e):
            logger.error("Document persistence failed", path=e.path, reason=e.reason)
            return jsonify({
                'error': 'Persistence error',
                'message': 'Account documents are in an unknown state; re-read before retrying'
            }), 500

        @app.errorhandler(FirewallError)
        def handle_firewall_error(e):
            return jsonify({
                'error': 'Firewall error',
                'message': str(e)
            }), 500

        @app.errorhandler(ConfigurationError)
        def handle_config_error(e):
            return jsonify({
                'error': 'Configuration error',
                'message': str(e)
            }), 500

        @app.errorhandler(RemoteStoreError)
        def handle_remote_error(e):
            return jsonify({
                'error': 'Remote VPN service error',
                'message': str(e)
            }), 502

        @app.errorhandler(ProvisioningError)
        def handle_provisioning_error(e):
            return jsonify({
                'error': 'Provisioning error',
                'message': str(e)
            }), 500

        @app.errorhandler(404)
        def handle_not_found(e):
            return jsonify({
                'error': 'Not found',
                'message': 'The requested endpoint does not exist'
            }), 404

        @app.errorhandler(405)
        def handle_method_not_allowed(e):
            return jsonify({
                'error': 'Method not allowed',
                'message': 'The HTTP method is not allowed for this endpoint'
            }), 405
