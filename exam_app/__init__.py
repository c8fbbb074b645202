from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager
import os

# Initialize extensions
db = SQLAlchemy()
jwt = JWTManager()

def create_app(test_config=None):
    """Create and configure an instance of the Flask application."""
    app = Flask(__name__, instance_relative_config=True)

    # Load configuration from config.py
    app.config.from_object('config.Config')
    if test_config:
        app.config.update(test_config)

    # Configure JWT (examiner login only; candidates use their exam token)
    app.config["JWT_TOKEN_LOCATION"] = ["cookies"]
    app.config["JWT_COOKIE_CSRF_PROTECT"] = False

    # Ensure the instance folder exists
    try:
        os.makedirs(app.instance_path)
    except OSError:
        pass

    # Initialize extensions with the app
    db.init_app(app)
    jwt.init_app(app)

    from .errors import register_error_handlers
    register_error_handlers(app)

    with app.app_context():
        # Import parts of our application
        from . import routes
        from . import examiner
        from . import auth
        from . import models  # noqa: F401

        # Create database tables for our models
        db.create_all()

        # Load test payloads into the database
        from .test_content import load_tests_from_json
        tests_dir = app.config.get('TESTS_DIR')
        if tests_dir:
            load_tests_from_json(tests_dir)

        # Register blueprints
        app.register_blueprint(routes.session_bp)
        app.register_blueprint(examiner.examiner_bp)
        app.register_blueprint(auth.auth_bp)

        return app
