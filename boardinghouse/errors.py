# boardinghouse/errors.py
from flask import jsonify

from .extensions import db


class BillingError(Exception):
    """Base class for domain errors surfaced to callers of the engine."""

    status_code = 400
    error = "billing_error"

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        body = {"error": self.error, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(BillingError):
    status_code = 400
    error = "validation_error"


class ConflictError(BillingError):
    status_code = 409
    error = "conflict"


class NotFoundError(BillingError):
    status_code = 404
    error = "not_found"


def register_error_handlers(app):
    @app.errorhandler(BillingError)
    def billing_error(e):
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(400)
    def bad_request(e):
        msg = getattr(e, "description", "Bad Request")
        return jsonify(error="bad_request", message=msg), 400

    @app.errorhandler(401)
    def unauthorized(e): return jsonify(error="unauthorized"), 401

    @app.errorhandler(403)
    def forbidden(e): return jsonify(error="forbidden"), 403

    @app.errorhandler(404)
    def not_found(e): return jsonify(error="not_found"), 404

    @app.errorhandler(500)
    def server_error(e):
        db.session.rollback()
        app.logger.exception("Unhandled exception: %s", e)
        return jsonify(error="server_error"), 500
