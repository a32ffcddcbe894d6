import logging

from flask import Flask

from donorsync.config import Config
from donorsync.extensions import bcrypt, cors, db, jwt, limiter, mail, migrate
from donorsync.errors import register_error_handlers, register_jwt_handlers

# Import controllers (blueprints) for each module
from donorsync.controllers.auth_controller import auth_bp
from donorsync.controllers.user_controller import user_bp
from donorsync.controllers.donor_controller import donor_bp
from donorsync.controllers.blood_request_controller import blood_request_bp
from donorsync.controllers.donation_controller import donation_bp
from donorsync.controllers.certificate_controller import certificate_bp
from donorsync.controllers.inventory_controller import inventory_bp
from donorsync.controllers.compatibility_controller import compatibility_bp


def _configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    logging.getLogger('donorsync').setLevel(level)
    app.logger.setLevel(level)


def create_app(config_class=Config):
    """Flask application factory"""
    app = Flask(__name__)
    app.config.from_object(config_class)
    _configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    bcrypt.init_app(app)
    jwt.init_app(app)
    mail.init_app(app)
    cors.init_app(app, resources={r'/api/*': {'origins': app.config['CORS_ORIGINS']}})
    limiter.init_app(app)

    register_error_handlers(app)
    register_jwt_handlers(jwt)

    app.register_blueprint(auth_bp, url_prefix='/api/v1/auth')
    app.register_blueprint(user_bp, url_prefix='/api/v1/users')
    app.register_blueprint(donor_bp, url_prefix='/api/v1/donors')
    app.register_blueprint(blood_request_bp, url_prefix='/api/v1/bloodrequests')
    app.register_blueprint(donation_bp, url_prefix='/api/v1/donations')
    app.register_blueprint(certificate_bp, url_prefix='/api/v1/certificates')
    app.register_blueprint(inventory_bp, url_prefix='/api/v1/inventory')
    app.register_blueprint(compatibility_bp, url_prefix='/api/v1/compatibility')

    from donorsync.cli import register_commands
    register_commands(app)

    @app.route('/health')
    @limiter.exempt
    def health():
        return {'status': 'OK', 'service': 'donorsync'}

    return app
