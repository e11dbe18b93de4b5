# FILE: results_portal/__init__.py
from flask import Flask
from config import Config
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect

# 1. Extensions are declared here and bound to an app inside create_app()
db = SQLAlchemy()
migrate = Migrate()
login = LoginManager()
csrf = CSRFProtect()


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.json.sort_keys = False
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # 2. Bind extensions to this app instance
    db.init_app(app)
    migrate.init_app(app, db)
    login.init_app(app)
    csrf.init_app(app)

    from results_portal.errors import bp as errors_bp
    app.register_blueprint(errors_bp)

    from results_portal.auth import bp as auth_bp
    app.register_blueprint(auth_bp, url_prefix='/api/auth')

    from results_portal.admin import bp as admin_bp
    app.register_blueprint(admin_bp, url_prefix='/api/admin')

    from results_portal.student import bp as student_bp
    app.register_blueprint(student_bp, url_prefix='/api/student')

    # 3. Deployments without a migration history still get their tables
    if app.config.get('AUTO_CREATE_TABLES'):
        with app.app_context():
            from results_portal import models  # noqa: F401 registers every table
            db.create_all()

    return app
