import asyncio

import pytest

from command_center.backend.models import Liveness, OperationStatus
from command_center.backend.services.operation_monitor import OperationMonitor
from command_center.backend.services.sessions import CommandResult

TRAINING_LOG = """\
loading dataset
Epoch 4/20 loss: 0.4321 acc: 0.8100
"""


@pytest.fixture
def monitor(manager, reconciler, session_factory, events):
    return OperationMonitor(
        connections=manager,
        status_reconciler=reconciler,
        session_factory=session_factory,
        events=events,
        poll_interval=0.01,
    )


def _log_responder(command):
    if command.startswith("tail"):
        return CommandResult(TRAINING_LOG, "", 0, 4)
    return None


def test_poll_refreshes_progress(monitor, manager, make_connection, make_operation, load_operation, received, fake_session):
    connection_id = make_connection()
    manager.sessions[connection_id] = fake_session(responder=_log_responder)
    operation_id = make_operation(connection_id, pid=100, log_file="/tmp/train.log")

    assert asyncio.run(monitor.poll_once(connection_id)) is True

    operation = load_operation(operation_id)
    assert operation.progress_current == 4
    assert operation.progress_total == 20
    assert operation.progress == 20
    assert operation.metrics == {"loss": 0.4321, "accuracy": 0.81}
    updates = [e["data"] for e in received if e["type"] == "operation_update"]
    assert updates[-1]["operationId"] == operation_id
    assert updates[-1]["type"] == "training"
    assert updates[-1]["statusChanged"] is False
    # Log reads are not user commands
    assert manager.command_history() == []


def test_poll_stops_dead_operations_before_reading_logs(
    monitor, manager, make_connection, make_operation, load_operation, fake_session
):
    connection_id = make_connection()
    session = fake_session(liveness={100: Liveness.DEAD}, responder=_log_responder)
    manager.sessions[connection_id] = session
    operation_id = make_operation(connection_id, pid=100, log_file="/tmp/train.log")

    asyncio.run(monitor.poll_once(connection_id))

    operation = load_operation(operation_id)
    assert operation.status == OperationStatus.STOPPED.value
    assert operation.progress_current is None
    assert not [c for c in session.commands if c.startswith("tail")]


def test_poll_without_session_ends_monitoring(monitor, make_connection):
    assert asyncio.run(monitor.poll_once(make_connection())) is False


def test_start_and_stop(monitor, manager, make_connection, fake_session):
    connection_id = make_connection()
    manager.sessions[connection_id] = fake_session()

    async def scenario():
        assert monitor.start_monitoring(connection_id) is True
        assert monitor.start_monitoring(connection_id) is False
        await asyncio.sleep(0.05)
        assert monitor.is_monitoring(connection_id)
        assert await monitor.stop_monitoring(connection_id) is True
        assert await monitor.stop_monitoring(connection_id) is False

    asyncio.run(scenario())
    assert not monitor.is_monitoring(connection_id)


def test_task_ends_when_connection_drops(monitor, manager, make_connection, fake_session):
    connection_id = make_connection()
    manager.sessions[connection_id] = fake_session()

    async def scenario():
        monitor.start_monitoring(connection_id)
        await asyncio.sleep(0.03)
        manager.sessions[connection_id].connected = False
        await asyncio.sleep(0.05)

    asyncio.run(scenario())
    assert connection_id not in monitor.tasks
