import logging

from flask import Flask
from flask_login import LoginManager
from config import Config
from credhub.models import db, User

from flask_wtf.csrf import CSRFProtect
from flask_migrate import Migrate

login_manager = LoginManager()
login_manager.login_view = 'auth.login'
csrf = CSRFProtect()
migrate = Migrate()


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    csrf.init_app(app)
    migrate.init_app(app, db)

    # Register Blueprints
    from credhub.routes.auth_routes import auth_bp
    from credhub.routes.dashboard_routes import dashboard_bp
    from credhub.routes.public_routes import public_bp, root_bp
    from credhub.routes.api import register_api

    app.register_blueprint(root_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(public_bp)
    register_api(app)

    from credhub.cli import register_cli
    register_cli(app)

    return app
