from __future__ import annotations

from flask import Flask, flash, g, jsonify, redirect, render_template, request, session, url_for
from flask_wtf.csrf import CSRFProtect
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from portal.auth import (
    AuthError,
    CredentialStore,
    DeviceMismatch,
    LoginService,
    RequestContext,
    SessionExpiredOrAbsent,
    SessionGate,
    SessionIssuer,
    build_second_factor,
)
from portal.config import Settings, load_settings
from portal.logging import AuditLogger
from portal.models import Base
from portal.services import DeliveryQueue, MenuService, build_mailer
from portal.web.dispatch import ActionDispatcher, ActionRequest, status_for_error
from portal.web.session_store import SqlSessionInterface

PUBLIC_ENDPOINTS = frozenset({"login", "login_verify", "login_resend", "register", "logout", "action", "static"})


def _form_int(name: str) -> int | None:
    try:
        return int(request.form.get(name, ""))
    except ValueError:
        return None


def create_portal_app(delivery: DeliveryQueue | None = None, settings: Settings | None = None) -> Flask:
    settings = settings or load_settings()
    app = Flask(__name__, template_folder="templates")
    app.secret_key = settings.session_secret
    app.config["SESSION_COOKIE_NAME"] = "portal_session"
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SECURE"] = settings.secure_cookies
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["PERMANENT_SESSION_LIFETIME"] = settings.session_idle_minutes * 60
    app.config["WTF_CSRF_ENABLED"] = settings.app_env != "test"

    engine = create_engine(settings.database_url, future=True, pool_pre_ping=True)
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    Base.metadata.create_all(engine)
    with SessionLocal() as db:
        CredentialStore(db).ensure_default_roles()

    app.session_interface = SqlSessionInterface(SessionLocal, idle_minutes=settings.session_idle_minutes)
    csrf = CSRFProtect(app)
    second_factor = build_second_factor(settings)
    resolved_delivery = delivery or DeliveryQueue(build_mailer(settings))
    app.extensions["portal"] = {
        "settings": settings,
        "session_factory": SessionLocal,
        "delivery": resolved_delivery,
    }

    def get_db() -> Session:
        if "db" not in g:
            g.db = SessionLocal()
        return g.db

    def build_service(db: Session) -> LoginService:
        store = CredentialStore(db)
        return LoginService(
            store,
            second_factor,
            SessionIssuer(store),
            MenuService(db),
            audit=AuditLogger(db),
            delivery=resolved_delivery,
            single_session_policy=settings.single_session_policy,
            live_session_check=store.token_is_live,
        )

    def request_context() -> RequestContext:
        return RequestContext(
            user_agent=request.headers.get("User-Agent", ""),
            ip_address=request.remote_addr,
            endpoint=request.endpoint,
        )

    def wants_json() -> bool:
        if request.headers.get("X-Requested-With") == "XMLHttpRequest":
            return True
        return request.accept_mimetypes.best == "application/json"

    def session_expired_response():
        if wants_json():
            payload = {"success": False, "message": "Session expired", "redirect_url": url_for("login")}
            return jsonify(payload), 401
        return redirect(url_for("login"))

    def render_login(error: str | None = None, challenge: dict | None = None, notice: str | None = None):
        roles = CredentialStore(get_db()).list_roles()
        return render_template(
            "login.html",
            second_factor=second_factor.name,
            roles=roles,
            error=error,
            notice=notice,
            challenge=challenge,
        )

    def pending_challenge(account_id: int | None) -> dict:
        return {"step": "verify", "method": second_factor.name, "account_id": account_id}

    @app.before_request
    def enforce_session():
        if request.endpoint is None or request.endpoint in PUBLIC_ENDPOINTS:
            return None
        gate = SessionGate(CredentialStore(get_db()))
        try:
            g.bound_session = gate.check(session, request.headers.get("User-Agent"))
        except (DeviceMismatch, SessionExpiredOrAbsent):
            return session_expired_response()
        return None

    @app.after_request
    def after_request(response):
        if g.get("bound_session") is not None:
            response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
            response.headers["Pragma"] = "no-cache"
            response.headers["Expires"] = "0"
        if settings.app_env != "test":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    @app.teardown_appcontext
    def close_db(exc):
        db = g.pop("db", None)
        if db is not None:
            db.close()

    @app.route("/")
    def index():
        return redirect(url_for("dashboard"))

    @app.route("/login", methods=["GET", "POST"])
    def login():
        if request.method == "GET":
            return render_login()
        service = build_service(get_db())
        try:
            result = service.begin_login(
                request.form.get("username", ""),
                request.form.get("password", ""),
                role_id=_form_int("role_id"),
                context=request_context(),
            )
        except AuthError as exc:
            return render_login(error=exc.message), status_for_error(exc)
        return render_login(challenge=result.as_result())

    @app.route("/login/verify", methods=["POST"])
    def login_verify():
        account_id = _form_int("account_id")
        service = build_service(get_db())
        try:
            result = service.complete_login(account_id, request.form.get("code", ""), session, request_context())
        except AuthError as exc:
            return render_login(error=exc.message, challenge=pending_challenge(account_id)), status_for_error(exc)
        return redirect(result.redirect_url)

    @app.route("/login/resend", methods=["POST"])
    def login_resend():
        account_id = _form_int("account_id")
        service = build_service(get_db())
        try:
            service.resend_code(account_id, context=request_context())
        except AuthError as exc:
            return render_login(error=exc.message, challenge=pending_challenge(account_id)), status_for_error(exc)
        return render_login(challenge=pending_challenge(account_id), notice="A new code has been sent.")

    @app.route("/register", methods=["GET", "POST"])
    def register():
        store = CredentialStore(get_db())
        roles = [r for r in store.list_roles() if r.name != "admin"]
        if request.method == "GET":
            return render_template("register.html", roles=roles, error=None)
        service = build_service(get_db())
        try:
            service.register(
                request.form.get("username", ""),
                request.form.get("password", ""),
                request.form.get("email", ""),
                role_id=_form_int("role_id"),
                first_name=request.form.get("first_name", ""),
                last_name=request.form.get("last_name", ""),
                context=request_context(),
            )
        except AuthError as exc:
            return render_template("register.html", roles=roles, error=exc.message), status_for_error(exc)
        except ValueError as exc:
            return render_template("register.html", roles=roles, error=str(exc)), 400
        flash("Registration successful! Please sign in.")
        return redirect(url_for("login"))

    @app.route("/dashboard")
    def dashboard():
        bound = g.bound_session
        return render_template("dashboard.html", display_name=bound.display_name, menus=bound.menus)

    @app.route("/logout", methods=["POST"])
    def logout():
        build_service(get_db()).logout(session, request_context())
        return redirect(url_for("login"))

    @app.route("/portal/action", methods=["POST"])
    @csrf.exempt
    def action():
        try:
            action_request = ActionRequest.from_payload(request.get_json(silent=True))
        except ValueError as exc:
            return jsonify({"success": False, "message": str(exc)}), 400
        service = build_service(get_db())
        dispatcher = ActionDispatcher(service, SessionGate(service.store), login_url=url_for("login"))
        payload, status = dispatcher.dispatch(action_request, session, request_context())
        return jsonify(payload), status

    return app
