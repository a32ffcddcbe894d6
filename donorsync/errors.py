"""Error taxonomy shared by the services and its translation to HTTP.

Services raise these; only the handlers registered here turn them into
JSON responses.
"""
from flask import current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from donorsync.extensions import db


class DonorSyncError(Exception):
    status_code = 500
    reason = 'server_error'
    default_message = 'Unexpected server error'

    def __init__(self, message=None, reason=None, details=None, **extra):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        if reason is not None:
            self.reason = reason
        self.details = details
        self.extra = extra

    def to_dict(self):
        body = {'message': self.message, 'reason': self.reason}
        if self.details:
            body['details'] = self.details
        body.update(self.extra)
        return {'error': body}


class ValidationError(DonorSyncError):
    status_code = 400
    reason = 'validation_failed'
    default_message = 'Validation failed'


class NotFoundError(DonorSyncError):
    status_code = 404
    reason = 'not_found'
    default_message = 'Resource not found'


class AuthenticationError(DonorSyncError):
    status_code = 401
    reason = 'unauthorized'
    default_message = 'Authentication required'


class AuthorizationError(DonorSyncError):
    status_code = 403
    reason = 'forbidden'
    default_message = 'Not authorized to perform this action'


class PreconditionError(DonorSyncError):
    status_code = 409
    reason = 'precondition_failed'
    default_message = 'Precondition failed'


class ServerError(DonorSyncError):
    pass


def register_error_handlers(app):
    @app.errorhandler(DonorSyncError)
    def handle_domain_error(error):
        if error.status_code >= 500:
            current_app.logger.error('Server error: %s', error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error):
        db.session.rollback()
        current_app.logger.exception('Database error')
        return jsonify({'error': {'message': 'Database error occurred', 'reason': 'server_error'}}), 500

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        reason = (error.name or 'error').lower().replace(' ', '_')
        return jsonify({'error': {'message': error.description, 'reason': reason}}), error.code


def register_jwt_handlers(jwt):
    """Token problems answer with the same error body as everything else."""
    def _unauthorized(message, reason):
        return jsonify(AuthenticationError(message, reason=reason).to_dict()), 401

    @jwt.unauthorized_loader
    def missing_token(message):
        return _unauthorized(message, 'missing_token')

    @jwt.invalid_token_loader
    def invalid_token(message):
        return _unauthorized(message, 'invalid_token')

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return _unauthorized('Token has expired', 'token_expired')
