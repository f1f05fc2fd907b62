"""
Pytest Configuration and Fixtures

MongoDB is replaced by mongomock so the real repository code runs
unchanged; time comes from a FixedClock.
"""

import mongomock
import pytest
from fastapi.testclient import TestClient

from priorauth.api.deps import get_workflow_engine_dep
from priorauth.domain.models import Authorization, StateFormTemplate
from priorauth.engine.audit_writer import AuditWriter
from priorauth.engine.engine import WorkflowEngine
from priorauth.engine.keyed_lock import KeyedLock
from priorauth.repositories.authorization_repo import AuthorizationRepository
from priorauth.repositories.form_template_repo import FormTemplateRepository
from priorauth.repositories.mongo_client import create_indexes
from priorauth.repositories.step_repo import StepRepository
from priorauth.utils.time import FixedClock

AUTHORIZATION_ID = "A-1"


@pytest.fixture
def database():
    """Fresh in-memory database with the production indexes"""
    client = mongomock.MongoClient(tz_aware=True)
    db = client["prior_auth_test"]
    create_indexes(db)
    yield db
    client.close()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def step_repo(database):
    return StepRepository(database)


@pytest.fixture
def authorization_repo(database):
    return AuthorizationRepository(database)


@pytest.fixture
def template_repo(database):
    return FormTemplateRepository(database)


@pytest.fixture
def audit_writer(database, clock):
    return AuditWriter(database, clock=clock)


@pytest.fixture
def engine(database, clock, audit_writer):
    return WorkflowEngine(
        database=database,
        clock=clock,
        audit_writer=audit_writer,
        lock=KeyedLock(timeout_seconds=5)
    )


@pytest.fixture
def authorization(authorization_repo, clock):
    """Authorization A-1, not yet initialized"""
    return authorization_repo.create_authorization(Authorization(
        authorization_id=AUTHORIZATION_ID,
        created_at=clock.now(),
        updated_at=clock.now()
    ))


@pytest.fixture
def initialized(engine, authorization):
    """Authorization A-1 with its workflow initialized by u1"""
    engine.initialize_workflow(AUTHORIZATION_ID, "u1")
    return authorization


@pytest.fixture
def ca_template(template_repo):
    return template_repo.create_template(StateFormTemplate(
        template_id="TPL-CA-PA",
        state="ca",
        form_name="California Uniform Prior Authorization Request",
        template_path="/forms/templates/ca_prior_auth.pdf",
        fields=["treatmentType", "cptCode", "memberId"]
    ))


@pytest.fixture
def api_client(engine):
    """TestClient wired to the test engine (lifespan is not started)"""
    from priorauth.main import create_app

    app = create_app()
    app.dependency_overrides[get_workflow_engine_dep] = lambda: engine
    return TestClient(app)


@pytest.fixture
def headers():
    return {"X-User-Id": "u1", "X-Correlation-Id": "COR-test-1"}
