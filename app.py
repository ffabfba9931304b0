# type: ignore
# pyright: ignore
# app.py

import logging

from flask import Flask, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

import config
from errors import LibraryError, Internal, Unauthorized
from extension import db, login_manager, migrate
from models import User
from services import identity

# Import all blueprints
from blueprints.auth import auth_bp
from blueprints.books import books_bp
from blueprints.student import student_bp
from blueprints.admin import admin_bp
from blueprints.functions import functions_bp

logger = logging.getLogger(__name__)


def create_app(test_config=None):
    app = Flask(__name__)

    # ------------------------------------
    # APP CONFIG
    # ------------------------------------
    app.config["SQLALCHEMY_DATABASE_URI"] = config.DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["SECRET_KEY"] = config.SECRET_KEY
    app.config["TOKEN_MAX_AGE"] = config.TOKEN_MAX_AGE
    app.config["LOG_LEVEL"] = config.LOG_LEVEL
    app.config["DEFAULT_LOAN_DAYS"] = config.DEFAULT_LOAN_DAYS
    app.config["DEFAULT_BORROW_LIMIT"] = config.DEFAULT_BORROW_LIMIT
    app.config["CLAMP_RETURNS_TO_TOTAL"] = config.CLAMP_RETURNS_TO_TOTAL
    app.config["FUZZY_THRESHOLD"] = config.FUZZY_THRESHOLD

    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    # ------------------------------------
    # INITIALIZE EXTENSIONS
    # ------------------------------------
    db.init_app(app)
    login_manager.init_app(app)

    # Enable Flask-Migrate
    migrate.init_app(app, db)

    # ------------------------------------
    # USER LOADERS (Flask-Login)
    # ------------------------------------
    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    # Authorization: Bearer <token>
    @login_manager.request_loader
    def load_user_from_request(request):
        return identity.user_from_header(request.headers.get("Authorization"))

    # ------------------------------------
    # UNAUTHORIZED HANDLER
    # ------------------------------------
    @login_manager.unauthorized_handler
    def unauthorized():
        err = Unauthorized("Please log in to access that resource.")
        return jsonify(err.to_dict()), err.status_code

    # ------------------------------------
    # ERROR HANDLERS
    # ------------------------------------
    @app.errorhandler(LibraryError)
    def handle_library_error(err):
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(err):
        db.session.rollback()
        logger.exception("Unhandled database error")
        internal = Internal("Database error")
        return jsonify(internal.to_dict()), internal.status_code

    @app.errorhandler(404)
    @app.errorhandler(405)
    def handle_http_error(err):
        kind = err.name.lower().replace(" ", "_")
        return jsonify({"error": err.description, "kind": kind}), err.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(err):
        if isinstance(err, HTTPException):
            return err
        logger.exception("Unhandled error on %s", request.path)
        internal = Internal()
        return jsonify(internal.to_dict()), internal.status_code

    # ------------------------------------
    # REGISTER BLUEPRINTS
    # ------------------------------------
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(books_bp, url_prefix="/books")
    app.register_blueprint(student_bp, url_prefix="/student")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(functions_bp, url_prefix="/functions")

    # ------------------------------------
    # ROOT ROUTE
    # ------------------------------------
    @app.route("/")
    def index():
        return jsonify({"name": "library", "status": "ok"})

    return app


# ------------------------------------
# RUN THE APPLICATION
# ------------------------------------
if __name__ == "__main__":
    app = create_app()
    app.run(debug=True)
