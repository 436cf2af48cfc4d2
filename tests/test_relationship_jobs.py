"""Tests for relationship maintenance job registration and job bodies."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from domains.resurfacing import config
from domains.resurfacing.errors import OperationResult
from jobs.relationship_maintenance import (
    pump_debounce_queue,
    register_relationship_jobs,
    run_daily_maintenance,
    sweep_pending_updates,
)


@pytest.fixture
def engine():
    engine = MagicMock()
    engine.orchestrator.fire_due = AsyncMock(return_value=[])
    engine.orchestrator.process_pending_updates = AsyncMock(return_value=0)
    engine.orchestrator.perform_maintenance = AsyncMock(return_value=0)
    engine.backup_state = AsyncMock(return_value=OperationResult.ok())
    return engine


class TestRegistration:
    """Test scheduler wiring."""

    def test_registers_three_jobs(self, engine):
        scheduler = MagicMock()

        register_relationship_jobs(scheduler, engine)

        assert scheduler.add_job.call_count == 3
        ids = [c.kwargs["id"] for c in scheduler.add_job.call_args_list]
        assert ids == ["relationship_debounce", "relationship_sweep", "relationship_maintenance"]

    def test_interval_jobs_do_not_overlap(self, engine):
        scheduler = MagicMock()

        register_relationship_jobs(scheduler, engine)

        debounce, sweep, _ = scheduler.add_job.call_args_list
        assert debounce.args == (pump_debounce_queue, 'interval')
        assert debounce.kwargs["seconds"] == config.DEBOUNCE_POLL_SECONDS
        assert sweep.kwargs["seconds"] == config.BATCH_PROCESSING_INTERVAL
        for call in (debounce, sweep):
            assert call.kwargs["max_instances"] == 1
            assert call.kwargs["coalesce"] is True
            assert call.kwargs["args"] == [engine]

    def test_registers_with_real_scheduler(self, engine):
        """Job ids are visible on an unstarted APScheduler instance."""
        scheduler = AsyncIOScheduler()

        register_relationship_jobs(scheduler, engine)

        job_ids = {job.id for job in scheduler.get_jobs()}
        assert job_ids == {"relationship_debounce", "relationship_sweep", "relationship_maintenance"}

    def test_maintenance_is_daily_cron(self, engine):
        scheduler = MagicMock()

        register_relationship_jobs(scheduler, engine)

        maintenance = scheduler.add_job.call_args_list[2]
        assert maintenance.args == (run_daily_maintenance, 'cron')
        assert (maintenance.kwargs["hour"], maintenance.kwargs["minute"]) == (3, 30)


class TestJobs:
    """Test job bodies against a mocked engine."""

    @pytest.mark.asyncio
    async def test_pump_fires_due(self, engine):
        engine.orchestrator.fire_due.return_value = [OperationResult.ok([]), OperationResult.fail("boom")]

        await pump_debounce_queue(engine)

        engine.orchestrator.fire_due.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sweep_flushes_pending(self, engine):
        engine.orchestrator.process_pending_updates.return_value = 4

        await sweep_pending_updates(engine)

        engine.orchestrator.process_pending_updates.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_daily_maintenance_sweeps_and_backs_up(self, engine):
        engine.orchestrator.perform_maintenance.return_value = 2

        await run_daily_maintenance(engine)

        engine.orchestrator.perform_maintenance.assert_awaited_once()
        engine.backup_state.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_backup_failure_does_not_raise(self, engine):
        engine.backup_state.return_value = OperationResult.fail("state backend offline")

        await run_daily_maintenance(engine)

        engine.backup_state.assert_awaited_once()
