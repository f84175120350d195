"""Shared fixtures: a throwaway SQLite store and scripted host sessions."""

import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from command_center.backend.models import DGXConnection, Liveness, Operation
from command_center.backend.models.database import create_db_engine, init_database
from command_center.backend.services.connection_manager import ConnectionManager
from command_center.backend.services.event_manager import EventManager
from command_center.backend.services.reconciler import OperationReconciler
from command_center.backend.services.sessions import CommandResult


class FakeSession:
    """Scripted host session.

    ``liveness`` maps pid to a Liveness value (or an exception to raise);
    ``responder`` maps a command to a CommandResult.
    """

    def __init__(self, liveness=None, default=Liveness.ALIVE, responder=None, delay=0.0):
        self.connected = True
        self.liveness = dict(liveness or {})
        self.default = default
        self.responder = responder
        self.delay = delay
        self.commands = []
        self.probes = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def open(self):
        self.connected = True

    async def close(self):
        self.connected = False

    async def run(self, command, timeout=None):
        self.commands.append(command)
        if self.responder is not None:
            result = self.responder(command)
            if result is not None:
                return result
        return CommandResult(stdout="", stderr="", exit_code=0, duration_ms=1)

    async def process_liveness(self, pid):
        self.probes.append(pid)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            value = self.liveness.get(pid, self.default)
            if isinstance(value, Exception):
                raise value
            return value
        finally:
            self.in_flight -= 1


@pytest.fixture
def fake_session():
    """The scripted session class, for tests that install their own sessions."""
    return FakeSession


@pytest.fixture
def db_engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path}/test.db")
    init_database(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def events():
    return EventManager()


@pytest.fixture
def received(events):
    """Every event broadcast through the ``events`` fixture."""
    collected = []
    events.subscribe(collected.append)
    return collected


@pytest.fixture
def manager(session_factory, events):
    return ConnectionManager(
        session_factory=session_factory,
        events=events,
        session_builder=lambda connection: FakeSession(),
    )


@pytest.fixture
def reconciler(manager, session_factory, events):
    return OperationReconciler(
        connections=manager, session_factory=session_factory, events=events
    )


@pytest.fixture
def make_connection(session_factory):
    def _make(name="spark", hostname="10.0.0.5", username="ubuntu", **kwargs):
        db = session_factory()
        try:
            connection = DGXConnection(
                name=name, hostname=hostname, username=username, **kwargs
            )
            db.add(connection)
            db.commit()
            return connection.id
        finally:
            db.close()

    return _make


@pytest.fixture
def make_operation(session_factory):
    counter = {"n": 0}

    def _make(connection_id, pid=None, status="running", name=None, **kwargs):
        counter["n"] += 1
        db = session_factory()
        try:
            kwargs.setdefault(
                "started_at", datetime.utcnow() - timedelta(minutes=counter["n"])
            )
            operation = Operation(
                connection_id=connection_id,
                name=name or f"op-{counter['n']}",
                type="training",
                status=status,
                pid=pid,
                **kwargs,
            )
            db.add(operation)
            db.commit()
            return operation.id
        finally:
            db.close()

    return _make


@pytest.fixture
def load_operation(session_factory):
    def _load(operation_id):
        db = session_factory()
        try:
            return db.get(Operation, operation_id)
        finally:
            db.close()

    return _load
