# Scheduler tests
# Trigger policy and checkpoint advancement

from conftest import active

from fav_backup.core.models import SchemaError, SyncMode
from fav_backup.core.scheduler import FULL_SYNC_INTERVAL, Scheduler, Trigger

NOW = 1_700_000_000.0


def make_scheduler(engine, checkpoint, now: float = NOW) -> Scheduler:
    return Scheduler(engine, checkpoint, clock=lambda: now)


class TestDecide:
    """Tests for full vs incremental decision."""

    def test_install_always_full(self, engine, checkpoint):
        checkpoint.advance(NOW - 60)
        scheduler = make_scheduler(engine, checkpoint)

        assert scheduler.decide(Trigger.INSTALL) is SyncMode.FULL

    def test_startup_without_checkpoint_is_full(self, engine, checkpoint):
        scheduler = make_scheduler(engine, checkpoint)

        assert scheduler.decide(Trigger.STARTUP) is SyncMode.FULL

    def test_startup_recent_checkpoint_is_incremental(self, engine, checkpoint):
        checkpoint.advance(NOW - 3600)
        scheduler = make_scheduler(engine, checkpoint)

        assert scheduler.decide(Trigger.STARTUP) is SyncMode.INCREMENTAL

    def test_startup_at_interval_is_full(self, engine, checkpoint):
        checkpoint.advance(NOW - FULL_SYNC_INTERVAL)
        scheduler = make_scheduler(engine, checkpoint)

        assert scheduler.decide(Trigger.STARTUP) is SyncMode.FULL

    def test_custom_interval(self, engine, checkpoint):
        checkpoint.advance(NOW - 3600)
        scheduler = Scheduler(engine, checkpoint, full_sync_interval=1800, clock=lambda: NOW)

        assert scheduler.decide(Trigger.STARTUP) is SyncMode.FULL


class TestRun:
    """Tests for sweeps run through the scheduler."""

    def test_install_advances_checkpoint(self, engine, catalog, checkpoint):
        catalog.add_folder("10", [active("BV1")])
        scheduler = make_scheduler(engine, checkpoint)

        result = scheduler.run(Trigger.INSTALL)

        assert result.success
        assert result.mode is SyncMode.FULL
        assert checkpoint.last_full_sync() == NOW

    def test_incremental_leaves_checkpoint(self, engine, catalog, checkpoint, mirror):
        catalog.add_folder("10", [active("BV1")])
        make_scheduler(engine, checkpoint, now=NOW - 3600).run(Trigger.INSTALL)

        catalog.folders["10"].append(active("BV2"))
        result = make_scheduler(engine, checkpoint).run(Trigger.STARTUP)

        assert result.mode is SyncMode.INCREMENTAL
        assert checkpoint.last_full_sync() == NOW - 3600
        assert mirror.lookup("10", "BV2") is not None

    def test_failed_full_sweep_keeps_checkpoint(self, engine, catalog, checkpoint, mirror):
        checkpoint.advance(NOW - 2 * FULL_SYNC_INTERVAL)
        catalog.add_folder("10", [active("BV1")])
        catalog.add_folder("20", [active("BV2")])
        catalog.page_errors["20"] = SchemaError("Page response missing 'medias'")

        result = make_scheduler(engine, checkpoint).run(Trigger.STARTUP)

        assert result.mode is SyncMode.FULL
        assert not result.success
        assert checkpoint.last_full_sync() == NOW - 2 * FULL_SYNC_INTERVAL
        assert mirror.lookup("10", "BV1") is not None

    def test_full_after_failure_retried_on_next_startup(self, engine, catalog, checkpoint):
        catalog.add_folder("10", [active("BV1")])
        catalog.page_errors["10"] = SchemaError("Page response missing 'info'")
        make_scheduler(engine, checkpoint).run(Trigger.INSTALL)

        del catalog.page_errors["10"]
        scheduler = make_scheduler(engine, checkpoint, now=NOW + 60)

        assert scheduler.decide(Trigger.STARTUP) is SyncMode.FULL
        assert scheduler.run(Trigger.STARTUP).success
        assert checkpoint.last_full_sync() == NOW + 60
