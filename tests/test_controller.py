import pytest

from ledger_app.ledger import goals
from ledger_app.ledger.controllers import AppConfig, LedgerController, build_controller
from ledger_app.ledger.storage import MemoryStore, SqliteStore

HOUR = 3600


def _controller(clock, store=None):
    return LedgerController(store or MemoryStore(), AppConfig(tick_seconds=3600), clock=clock)


def test_snapshot_on_first_run_is_empty(clock):
    snapshot = _controller(clock).get_snapshot()
    assert snapshot.today_seconds == 0
    assert snapshot.sessions_today == 0
    assert snapshot.streak_count == 0
    assert snapshot.goal.status == goals.INACTIVE
    assert snapshot.today_display == "0h 0m"


def test_get_snapshot_has_no_side_effects(clock):
    controller = _controller(clock)
    controller.get_snapshot()
    assert controller.store.dump() == {}


def test_goal_projection_in_snapshot(clock):
    controller = _controller(clock)
    controller.set_goal("Write report", clock.now + 47 * HOUR)
    snapshot = controller.get_snapshot()
    assert snapshot.goal.status == goals.WARNING
    assert snapshot.goal.label == "1d left"
    clock.advance(48 * HOUR)
    assert controller.get_snapshot().goal.status == goals.OVERDUE
    controller.set_goal("Write report")
    assert controller.get_snapshot().goal.status == goals.NO_DEADLINE
    controller.clear_goal()
    assert controller.get_snapshot().goal.status == goals.INACTIVE


def test_export_without_exporter_raises(clock):
    with pytest.raises(RuntimeError):
        _controller(clock).export_report()


def test_two_controllers_share_sqlite_store(tmp_path, clock):
    path = tmp_path / "ledger.db"
    tab_a = _controller(clock, SqliteStore(path))
    tab_b = _controller(clock, SqliteStore(path))
    tab_a.start()
    tab_b.start()
    tab_b.set_focused(False)
    for _ in range(6):
        clock.advance(5)
        tab_a.record_interaction()
        tab_a.tick()
        tab_b.tick()
    tab_a.stop()
    tab_b.stop()
    snapshot = tab_b.get_snapshot()
    assert snapshot.today_seconds == 30
    assert snapshot.sessions_today == 1


def test_build_controller_uses_configured_db(tmp_path):
    config = AppConfig(db_path=str(tmp_path / "data" / "ledger.db"))
    controller = build_controller(config)
    assert isinstance(controller.store, SqliteStore)
    assert controller.store.db_path == tmp_path / "data" / "ledger.db"


def test_build_controller_survives_unopenable_db(tmp_path):
    controller = build_controller(AppConfig(db_path=str(tmp_path), tick_seconds=3600))
    controller.start()
    try:
        snapshot = controller.tick()
    finally:
        controller.stop()
    assert snapshot.today_seconds == 0
    assert snapshot.sessions_today == 0
    assert snapshot.streak_count == 0
    assert controller.get_snapshot().today_display == "0h 0m"
