import logging
import os
from flask import Flask, jsonify, request, abort
from werkzeug.exceptions import HTTPException
from config import Config
from extensions import csrf, db, login_manager, migrate
from models import User
from blueprints.auth import bp as auth_bp
from blueprints.assignments import bp as assignments_bp
from blueprints.submissions import bp as submissions_bp

def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger().setLevel(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    login_manager.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(assignments_bp)
    app.register_blueprint(submissions_bp)

    @app.errorhandler(HTTPException)
    def json_error(exc):
        return jsonify({"error": exc.description or exc.name}), exc.code

    @app.route("/init")
    def init():
        # Guard: only allow in debug or with INIT_TOKEN
        if not app.debug:
            token = request.args.get("token")
            if not token or token != os.getenv("INIT_TOKEN"):
                abort(403)
        db.create_all()
        os.makedirs(app.config["UPLOAD_DIR"], exist_ok=True)
        if not db.session.query(User).filter_by(email="admin@example.com").first():
            u = User(
                name="Admin",
                email="admin@example.com",
                role="ADMIN",
                is_active=True,
            )
            seed_password = os.getenv("ADMIN_SEED_PASSWORD", "admin123")
            try:
                u.set_password(seed_password)
            except ValueError as exc:
                abort(500, description=str(exc))
            db.session.add(u)
            db.session.commit()
        return jsonify({"status": "initialised"})

    return app

if __name__ == "__main__":
    app = create_app()
    debug = os.getenv("FLASK_DEBUG") == "1"
    app.run(host="0.0.0.0", port=5000, debug=debug)
