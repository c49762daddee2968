"""
app.py - Application Factory
Entry point for the coursework grading service.
Uses the Application Factory pattern for modularity and testing.
"""

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from config import config
from errors import GradingError
from extensions import bcrypt, db, login_manager, migrate
from services.notifications import notifier


def create_app(config_name='development'):
    """
    Application Factory Function

    Args:
        config_name (str): Configuration to use ('development', 'production', 'testing')

    Returns:
        Flask: Configured Flask application instance
    """
    app = Flask(__name__)

    # Load configuration from config.py based on environment
    app.config.from_object(config[config_name])
    config[config_name].init_app(app)

    configure_logging(app)

    # Initialize extensions with the app
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    bcrypt.init_app(app)
    notifier.init_app(app)

    # User loader callback for Flask-Login
    @login_manager.user_loader
    def load_user(user_id):
        """Load user by ID for Flask-Login session management"""
        from models import User
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'success': False, 'error': 'Authentication required'}), 401

    register_blueprints(app)
    register_error_handlers(app)
    register_commands(app)

    # Import models so Flask-Migrate can detect them
    with app.app_context():
        import models  # noqa: F401

    return app


def configure_logging(app):
    """
    Route engine loggers (services.*) through the app's log level
    """
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    app.logger.setLevel(level)

    services_logger = logging.getLogger('services')
    services_logger.setLevel(level)
    if not logging.getLogger().handlers and not services_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s [%(name)s] %(message)s'
        ))
        services_logger.addHandler(handler)


def register_blueprints(app):
    """
    Register all application blueprints (modular route handlers)
    """
    from blueprints.auth.routes import auth_bp
    from blueprints.student.routes import student_bp
    from blueprints.teacher.routes import teacher_bp

    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(student_bp, url_prefix='/student')
    app.register_blueprint(teacher_bp, url_prefix='/teacher')

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok'})


def register_error_handlers(app):
    """
    Register JSON error handlers for engine errors and common HTTP errors
    """
    @app.errorhandler(GradingError)
    def grading_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({'success': False, 'error': error.description}), error.code

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()  # Rollback any failed database transactions
        app.logger.error("Unhandled error: %s", error, exc_info=True)
        return jsonify({'success': False, 'error': 'Internal server error'}), 500


def register_commands(app):
    @app.cli.command('init-db')
    def init_db():
        """Create all database tables."""
        db.create_all()
        print("Database tables created.")


# Run the application
if __name__ == '__main__':
    app = create_app('development')

    app.run(
        host='0.0.0.0',
        port=5000,
        debug=True
    )
