from __future__ import annotations

import pytest
from sqlalchemy import create_engine as create_sync_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from backend.app.db import models
from backend.app.db.gateway import ReadOnlyGateway
from backend.app.db.session import create_engine
from backend.tests.factories import FakeClock


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "vinops.db"


@pytest.fixture
def sync_engine(db_path):
    engine = create_sync_engine(f"sqlite:///{db_path}")
    models.Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def seed(sync_engine):
    def _seed(*objects):
        with Session(sync_engine) as session:
            session.add_all(objects)
            session.commit()

    return _seed


@pytest.fixture
def engine(sync_engine, db_path):
    # NullPool: every checkout opens a fresh aiosqlite connection on the running loop
    return create_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)


@pytest.fixture
def gateway(engine):
    return ReadOnlyGateway(engine, timeout=5.0, retry_delay=0)


@pytest.fixture
def clock():
    return FakeClock()
