from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException
from sqlalchemy import create_engine, func, inspect, select
from sqlalchemy.exc import SQLAlchemyError

from portal.config import load_settings
from portal.models import Base, WebSession

PORTAL_TABLES = frozenset(Base.metadata.tables)


def create_app() -> FastAPI:
    """Operational API for the portal; serve with ``uvicorn portal.main:create_app --factory``."""
    settings = load_settings()
    app = FastAPI(title="Portal Auth API", version="0.1.0")
    app.state.settings = settings
    app.state.engine = create_engine(settings.database_url, future=True, pool_pre_ping=True)

    @app.get("/health")
    def health():
        engine = app.state.engine
        try:
            with engine.connect() as connection:
                missing = sorted(PORTAL_TABLES - set(inspect(connection).get_table_names()))
                active_sessions = None
                if WebSession.__tablename__ not in missing:
                    active_sessions = connection.execute(
                        select(func.count()).select_from(WebSession).where(
                            WebSession.expires_at > datetime.now(timezone.utc)
                        )
                    ).scalar_one()
        except (SQLAlchemyError, OSError) as exc:
            raise HTTPException(status_code=503, detail="database_unavailable") from exc
        return {
            "status": "ok" if not missing else "degraded",
            "schema": {"ready": not missing, "missing_tables": missing},
            "active_sessions": active_sessions,
            "second_factor": settings.second_factor,
            "single_session_policy": settings.single_session_policy,
        }

    return app
