"""
WatchVault - Custom Exceptions
"""
import structlog
from flask import jsonify

logger = structlog.get_logger('exceptions')


class WatchVaultException(Exception):
    """Base exception for WatchVault"""
    def __init__(self, message: str, code: str = "WATCHVAULT_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self):
        return {
            'error': True,
            'code': self.code,
            'message': self.message
        }


class LocalStorageException(WatchVaultException):
    """Local store read/write/delete failures"""
    def __init__(self, message: str):
        super().__init__(message, code="LOCAL_STORAGE_ERROR")
        logger.error(f"Local storage error: {message}")


class RemoteWriteException(WatchVaultException):
    """Remote document store write failures"""
    def __init__(self, message: str):
        super().__init__(message, code="REMOTE_WRITE_ERROR")
        logger.error(f"Remote write error: {message}")


class ProviderFetchException(WatchVaultException):
    """Content provider failures"""
    def __init__(self, message: str, offline: bool = False):
        super().__init__(message, code="PROVIDER_FETCH_ERROR")
        self.offline = offline
        logger.warning(f"Provider fetch error: {message}")


class ValidationException(WatchVaultException):
    """Validation-related exceptions"""
    def __init__(self, message: str):
        super().__init__(message, code="VALIDATION_ERROR")
        logger.warning(f"Validation error: {message}")


class NotFoundException(WatchVaultException):
    """Unknown list, record or remote document"""
    def __init__(self, message: str):
        super().__init__(message, code="NOT_FOUND")
        logger.warning(f"Not found: {message}")


class AuthenticationException(WatchVaultException):
    """Authentication-related exceptions"""
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, code="AUTH_ERROR")
        logger.warning(f"Authentication error: {message}")


def register_exception_handlers(app):
    """Register exception handlers with Flask app"""

    @app.errorhandler(WatchVaultException)
    def handle_watchvault_exception(e):
        """Handle WatchVault custom exceptions"""
        return jsonify(e.to_dict()), 400

    @app.errorhandler(LocalStorageException)
    def handle_local_storage_exception(e):
        return jsonify(e.to_dict()), 500

    @app.errorhandler(RemoteWriteException)
    def handle_remote_write_exception(e):
        return jsonify(e.to_dict()), 502

    @app.errorhandler(ProviderFetchException)
    def handle_provider_fetch_exception(e):
        return jsonify(e.to_dict()), 503 if e.offline else 502

    @app.errorhandler(NotFoundException)
    def handle_not_found_exception(e):
        return jsonify(e.to_dict()), 404

    @app.errorhandler(AuthenticationException)
    def handle_auth_exception(e):
        """Handle authentication exceptions"""
        return jsonify(e.to_dict()), 401
