import os
os.environ["APP_ENV"] = "test"
if os.getenv("DATABASE_URL"):
    os.environ["POSTGRES_DSN"] = os.environ["DATABASE_URL"]

# THEN import anything else
import shutil
import tempfile
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Generator

import httpx
import pytest
from alembic import command
from alembic.config import Config
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, insert, inspect
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

import app.db.session as db_session_module
from app.api.deps import CoreServices, build_core_services, get_services
from app.core.config import get_settings
from app.db.base import Base
from app.db.store import SqlAlchemyStore
from app.providers.suggestion_client import HEALTH_PATH, SUGGESTIONS_PATH, HttpSuggestionClient
from app.services.template_cache import InMemoryTemplateCache

SUGGESTION_BASE_URL = "http://suggestions.test"


def _run_alembic_upgrade(backend_dir: Path, database_url: str) -> None:
    cfg = Config(str(backend_dir / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(cfg, "head")


def pytest_configure(config: pytest.Config) -> None:
    workers = getattr(config.option, "numprocesses", None)
    if workers and int(workers) > 1:
        pytest.exit("SQLite test path does not support pytest-xdist parallel workers.")


@pytest.fixture(scope="session", autouse=True)
def apply_migrations() -> Generator[Path, None, None]:
    backend_dir = Path(__file__).resolve().parents[1]
    temp_dir = Path(tempfile.mkdtemp(prefix="pytest-okr-db-"))
    template_db_path = temp_dir / f"template-{uuid.uuid4().hex}.sqlite3"
    database_url = f"sqlite:///{template_db_path.as_posix()}"
    os.environ["POSTGRES_DSN"] = database_url

    get_settings.cache_clear()
    db_session_module.reset_engine_state()
    _run_alembic_upgrade(backend_dir, database_url)
    verification_engine = create_engine(database_url, connect_args={"check_same_thread": False}, poolclass=NullPool)
    try:
        has_catalog = inspect(verification_engine).has_table("okr_master")
    finally:
        verification_engine.dispose()
    if not has_catalog:
        raise RuntimeError("Alembic migration parity check failed; missing table: okr_master")
    yield template_db_path
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture()
def session_factory(apply_migrations: Path) -> Generator[sessionmaker, None, None]:
    test_db_path = apply_migrations.parent / f"{uuid.uuid4().hex}.sqlite3"
    shutil.copy2(apply_migrations, test_db_path)
    engine = create_engine(
        f"sqlite:///{test_db_path.as_posix()}",
        connect_args={"check_same_thread": False, "timeout": 30},
        poolclass=NullPool,
    )
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    db_session_module.bind_session_factory_for_tests(factory)
    yield factory
    db_session_module.reset_engine_state()
    test_db_path.unlink(missing_ok=True)


@pytest.fixture()
def store(session_factory: sessionmaker) -> SqlAlchemyStore:
    return SqlAlchemyStore(session_factory)


def insert_rows(factory: sessionmaker, table_name: str, rows: list[dict[str, Any]]) -> None:
    table = Base.metadata.tables[table_name]
    with factory() as session:
        session.execute(insert(table), rows)
        session.commit()


@pytest.fixture()
def seed_catalog(session_factory: sessionmaker) -> dict[str, Any]:
    """Fitness catalog with primary metrics, plus a retail row that only matches by substring."""
    insert_rows(
        session_factory,
        "dim_metric_type",
        [
            {"id": "metric-1", "code": "followers", "unit": "count"},
            {"id": "metric-2", "code": "engagement_rate", "unit": "percent"},
        ],
    )
    insert_rows(session_factory, "dim_platform", [{"id": "platform-ig", "code": "instagram", "display_name": "Instagram"}])
    today = datetime.now(UTC).date()
    insert_rows(
        session_factory,
        "dim_date",
        [
            {"id": 1, "date_value": today + timedelta(days=90)},
            {"id": 2, "date_value": today - timedelta(days=30)},
        ],
    )
    masters = [
        {"id": "tpl-fit-1", "industry": "fitness", "category": "growth", "objective_title": "Grow social following", "priority_level": 1, "is_active": True},
        {"id": "tpl-fit-2", "industry": "fitness", "category": "engagement", "objective_title": "Lift class engagement", "priority_level": 2, "is_active": True},
        {"id": "tpl-retail-1", "industry": "fashion retail", "category": "revenue", "objective_title": "Increase online sales", "priority_level": 1, "is_active": True},
        {"id": "tpl-generic-1", "industry": None, "category": "awareness", "objective_title": "Build brand awareness", "priority_level": 3, "is_active": True},
        {"id": "tpl-off", "industry": "fitness", "category": "growth", "objective_title": "Retired template", "priority_level": 1, "is_active": False},
    ]
    insert_rows(session_factory, "okr_master", [{"suggested_timeframe": "quarterly", "tags": "[]", **row} for row in masters])
    insert_rows(
        session_factory,
        "okr_master_metrics",
        [
            {"id": "m-1", "okr_master_id": "tpl-fit-1", "metric_type_id": "metric-1", "is_primary": True, "target_improvement_percentage": 50.0, "weight": 1.0},
            {"id": "m-2", "okr_master_id": "tpl-fit-1", "metric_type_id": "metric-2", "is_primary": False, "target_improvement_percentage": 5.0, "weight": 1.0},
            {"id": "m-3", "okr_master_id": "tpl-fit-2", "metric_type_id": "metric-2", "is_primary": True, "target_improvement_percentage": None, "weight": 1.0},
        ],
    )
    return {"future_date_id": 1, "past_date_id": 2, "metric_id": "metric-1", "platform_id": "platform-ig"}


@pytest.fixture()
def seed_action(session_factory: sessionmaker) -> str:
    insert_rows(
        session_factory,
        "recommended_actions",
        [
            {
                "id": "action-1",
                "insight_id": "insight-1",
                "action_text": "Post three reels per week",
                "priority": "high",
                "stage": "new",
                "confidence_score": 0.7,
                "created_at": datetime.now(UTC),
            }
        ],
    )
    return "action-1"


class FakeSuggestionBackend:
    """Scriptable generative endpoint served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.statuses: list[int] = []
        self.status_code = 200
        self.health_status = "healthy"
        self.suggestions: list[dict[str, Any]] = [
            {
                "id": "ai-1",
                "title": "Grow Instagram followers",
                "description": "Reach more local athletes",
                "category": "growth",
                "priority": 1,
                "suggestedTargetValue": 25,
                "suggestedTimeframe": "monthly",
                "applicablePlatforms": ["instagram"],
                "metricTypeId": "metric-1",
                "confidenceScore": 0.92,
                "reasoning": "Strong social presence in fitness",
            }
        ]
        self.requests: list[httpx.Request] = []
        self.raise_exc: Callable[[httpx.Request], Exception] | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == HEALTH_PATH:
            return httpx.Response(200, json={"status": self.health_status})
        if self.raise_exc is not None:
            raise self.raise_exc(request)
        status = self.statuses.pop(0) if self.statuses else self.status_code
        if status != 200:
            return httpx.Response(status, json={"success": False, "error": f"upstream {status}"})
        return httpx.Response(
            200,
            json={
                "success": True,
                "data": {
                    "suggestions": self.suggestions,
                    "metadata": {"industry": "fitness", "generatedAt": "2026-10-18T00:00:00Z", "confidence": 0.9},
                },
            },
        )

    @property
    def suggestion_calls(self) -> int:
        return sum(1 for request in self.requests if request.url.path == SUGGESTIONS_PATH)

    def client(self) -> HttpSuggestionClient:
        return HttpSuggestionClient(SUGGESTION_BASE_URL, transport=httpx.MockTransport(self.handler))


@pytest.fixture()
def suggestion_backend() -> FakeSuggestionBackend:
    return FakeSuggestionBackend()


@pytest.fixture()
def services(store: SqlAlchemyStore, suggestion_backend: FakeSuggestionBackend) -> CoreServices:
    settings = get_settings().model_copy(
        update={
            "suggestion_retry_base_delay_seconds": 0.0,
            "suggestion_retry_max_delay_seconds": 0.0,
        }
    )
    return build_core_services(
        settings,
        store=store,
        suggestion_client=suggestion_backend.client(),
        cache=InMemoryTemplateCache(ttl_seconds=settings.template_cache_ttl_seconds),
    )


@pytest.fixture()
def client(services: CoreServices) -> Generator[TestClient, None, None]:
    from app.main import app

    app.dependency_overrides[get_services] = lambda: services
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
