import logging
import os

from flask import Flask, g, render_template, request, session
from dotenv import load_dotenv

from app.crm.config import load_config
from app.crm.db import init_db, teardown_db_session
from app.crm.routes import bp as routes_bp
from app.crm.auth import bp as auth_bp, load_current_user
from app.crm.modules.customers.admin import bp as customers_bp
from app.crm.modules.jobs.admin import bp as jobs_bp
from app.crm.modules.profiles.admin import bp as profiles_bp
from app.crm.utils import format_duration, format_long_date, format_timestamp


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.logger.setLevel(app.config.get("LOG_LEVEL") or "INFO")

    from app.crm.security import csrf_required, ensure_csrf_token, is_unguarded_path, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_role_gate() -> dict:
        # Functions, not values: every affordance re-checks the role when rendered.
        from app.crm.rbac import current_role, is_admin

        return {"current_role": current_role, "is_admin": is_admin}

    app.add_template_filter(format_long_date, "longdate")
    app.add_template_filter(format_duration, "hours")
    app.add_template_filter(format_timestamp, "timestamp")

    @app.before_request
    def _csrf_guard():
        if is_unguarded_path(request.path):
            return None
        ensure_csrf_token()
        session.permanent = True
        if csrf_required(request) and not validate_csrf(request):
            app.logger.warning("CSRF rejected: %s %s", request.method, request.path)
            return render_template("errors/400.html", message="CSRF token missing or invalid."), 400
        return None

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(customers_bp)
    app.register_blueprint(jobs_bp)
    app.register_blueprint(profiles_bp)

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure stack trace shows in the platform logs.
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return render_template("errors/500.html"), 500

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_role", None)
        if missing:
            app.logger.warning("Forbidden: missing_role=%s request_id=%s", missing, getattr(g, "request_id", None))
        return render_template("errors/403.html", missing_role=missing), 403

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        message = getattr(e, "description", None) or "Page not found."
        if request.path.endswith(".json"):
            return {"error": message}, 404
        return render_template("errors/404.html", message=message), 404

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
