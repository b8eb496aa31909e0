"""Tests for the Mechanic Service pass driver."""

import asyncio
import os
import threading
from datetime import datetime

from mechanic.models.config import MechanicConfig
from mechanic.models.task import TaskState
from mechanic.service.loop import MechanicService
from mechanic.storage.preferences import MemoryPreferenceStore
from mechanic.storage.settings import MemorySettingsStore
from mechanic.tasks.base import Task
from mechanic.tasks.catalog import SourceFailureRegistry


class FakeTask(Task):
    """Task with scripted evaluate/run behavior."""

    def __init__(self, task_id, satisfied=False, fail_run=False, fail_evaluate=False, fixes=True):
        self._id = task_id
        self.title = task_id
        self.satisfied = satisfied
        self.fail_run = fail_run
        self.fail_evaluate = fail_evaluate
        self.fixes = fixes
        self.evaluations = 0
        self.runs = 0

    @property
    def id(self):
        return self._id

    def evaluate(self):
        self.evaluations += 1
        if self.fail_evaluate:
            raise OSError("resource vanished")
        return self.satisfied

    def run(self):
        self.runs += 1
        if self.fail_run:
            raise RuntimeError("repair failed")
        if self.fixes:
            self.satisfied = True


def _service(config=None, **kwargs):
    return MechanicService(
        store=MemoryPreferenceStore(),
        settings=MemorySettingsStore(),
        config=config or MechanicConfig(),
        **kwargs,
    )


class TestRunPass:
    def test_satisfied_task_is_not_run(self):
        svc = _service()
        task = FakeTask("ok", satisfied=True)
        svc.register_task(task)

        report = svc.run_pass()

        assert task.runs == 0
        assert report.outcomes[0].state == TaskState.SATISFIED

    def test_unsatisfied_task_is_repaired_without_reverify(self):
        svc = _service()
        task = FakeTask("broken")
        svc.register_task(task)

        report = svc.run_pass()

        assert task.runs == 1
        assert task.evaluations == 1
        assert report.outcomes[0].state == TaskState.REPAIRED

    def test_failure_does_not_stop_pass(self):
        svc = _service()
        failing = FakeTask("failing", fail_run=True)
        other = FakeTask("other")
        svc.register_task(failing)
        svc.register_task(other)

        report = svc.run_pass()

        assert report.failed_task_ids == ["failing"]
        assert other.runs == 1
        assert report.count(TaskState.REPAIRED) == 1
        assert "repair failed" in report.outcomes[0].error

    def test_evaluation_error_still_repairs(self):
        svc = _service()
        task = FakeTask("flaky", fail_evaluate=True)
        svc.register_task(task)

        outcome = svc.run_pass().outcomes[0]

        assert task.runs == 1
        assert outcome.evaluation_error == "resource vanished"
        assert outcome.state == TaskState.REPAIRED

    def test_blocked_task_skipped(self):
        svc = _service()
        task = FakeTask("blocked")
        svc.register_task(task)
        svc.block_task("blocked")

        report = svc.run_pass()

        assert task.evaluations == 0
        assert report.outcomes[0].state == TaskState.BLOCKED

        svc.unblock_task("blocked")
        svc.run_pass()
        assert task.runs == 1

    def test_verify_after_repair(self):
        svc = _service(MechanicConfig(verify_after_repair=True))
        stubborn = FakeTask("stubborn", fixes=False)
        fixed = FakeTask("fixed")
        svc.register_task(stubborn)
        svc.register_task(fixed)

        report = svc.run_pass()

        states = {o.task_id: o.state for o in report.outcomes}
        assert states == {"stubborn": TaskState.FAILED, "fixed": TaskState.REPAIRED}
        assert fixed.evaluations == 2

    def test_second_pass_converged(self):
        svc = _service()
        task = FakeTask("t")
        svc.register_task(task)
        svc.run_pass()
        report = svc.run_pass()
        assert report.outcomes[0].state == TaskState.SATISFIED
        assert task.runs == 1

    def test_history_is_bounded(self):
        svc = _service(MechanicConfig(history_limit=2))
        for _ in range(5):
            svc.run_pass()
        assert len(svc.history) == 2
        assert svc.last_report is svc.history[-1]


class TestLoadTasks:
    def test_loads_and_runs_file_tasks(self, tmp_path):
        (tmp_path / "import.epf").write_text(
            "file_export_version=3.0\n/instance/org.foo/a=1\n"
        )
        (tmp_path / "keep.epf").write_text(
            "# @task_type RECONCILING\n/instance/org.foo/b=2\n"
        )
        (tmp_path / "broken.epf").write_text("# @task_type RECONCILING\n/nope=\n")
        svc = _service(MechanicConfig(task_sources=[str(tmp_path)]))

        results = svc.load_tasks()

        assert len(results) == 3
        assert len(svc.get_tasks()) == 2
        assert len(svc.build_errors) == 1

        report = svc.run_pass()
        assert report.count(TaskState.REPAIRED) == 2
        assert svc.store.get("/instance/org.foo", "a") == "1"
        assert svc.store.get("/instance/org.foo", "b") == "2"

        # Reloading rebuilds the same ids, so bookkeeping still applies.
        svc.load_tasks()
        assert svc.run_pass().count(TaskState.SATISFIED) == 2

    def test_strategy_switch_does_not_reimport(self, tmp_path):
        f = tmp_path / "import.epf"
        f.write_text("file_export_version=3.0\n/instance/org.foo/a=1\n")
        os.utime(f, (1_700_000_000, 1_700_000_000))
        svc = _service(MechanicConfig(task_sources=[str(tmp_path)]))
        svc.load_tasks()
        svc.run_pass()

        svc.config.use_md5 = True
        assert svc.run_pass().count(TaskState.SATISFIED) == 1

    def test_failing_source_logged_once(self, tmp_path, caplog):
        missing = str(tmp_path / "missing")
        failures = SourceFailureRegistry()
        svc = _service(MechanicConfig(task_sources=[missing]), failures=failures)

        with caplog.at_level("ERROR"):
            svc.load_tasks()
            svc.load_tasks()

        assert caplog.text.count("does not exist") == 1
        assert missing in failures

        os.mkdir(missing)
        svc.load_tasks()
        assert missing not in failures


class TestScheduling:
    def test_heartbeat_clamped(self):
        svc = _service(MechanicConfig(heartbeat_interval_seconds=1))
        assert svc.seconds_until_next_pass() == 15.0

    def test_cron_schedule(self):
        svc = _service(MechanicConfig(schedule="*/5 * * * *"))
        now = datetime(2024, 1, 1, 12, 1, 0)
        assert svc.seconds_until_next_pass(now) == 240.0

    def test_invalid_schedule_falls_back(self):
        svc = _service(MechanicConfig(schedule="not a cron", heartbeat_interval_seconds=90))
        assert svc.seconds_until_next_pass() == 90.0

    def test_run_async_stops(self):
        svc = _service()
        task = FakeTask("t")
        svc.register_task(task)

        async def scenario():
            stop = asyncio.Event()
            stop.set()
            await svc.run_async(stop)

        asyncio.run(scenario())
        assert svc.status == "stopped"

    def test_run_async_runs_registered_tasks(self):
        svc = _service()
        task = FakeTask("t")
        svc.register_task(task)

        async def scenario():
            stop = asyncio.Event()
            loop_task = asyncio.ensure_future(svc.run_async(stop))
            await asyncio.sleep(0.05)
            stop.set()
            await loop_task

        asyncio.run(scenario())
        assert task.runs == 1
        assert svc.last_report.outcomes[0].state == TaskState.REPAIRED


class TestRegisteredTasks:
    def test_registered_task_survives_reload(self, tmp_path):
        (tmp_path / "keep.epf").write_text("# @task_type RECONCILING\n/instance/foo/bar=baz\n")
        svc = _service(MechanicConfig(task_sources=[str(tmp_path)]))
        svc.register_task(FakeTask("manual"))

        svc.load_tasks()
        svc.load_tasks()

        ids = [t.id for t in svc.get_tasks()]
        assert "manual" in ids
        assert len(ids) == 2
        assert svc.get_task("manual") is not None

    def test_unregister_removes_either_kind(self, tmp_path):
        (tmp_path / "keep.epf").write_text("# @task_type RECONCILING\n/instance/foo/bar=baz\n")
        svc = _service(MechanicConfig(task_sources=[str(tmp_path)]))
        svc.register_task(FakeTask("manual"))
        svc.load_tasks()

        for task in svc.get_tasks():
            svc.unregister_task(task.id)

        assert svc.get_tasks() == []


class TestLiveConfig:
    def test_short_circuit_follows_replaced_config(self, tmp_path):
        (tmp_path / "keep.epf").write_text("# @task_type RECONCILING\n/instance/foo/bar=baz\n")
        svc = _service(MechanicConfig(task_sources=[str(tmp_path)]))
        svc.load_tasks()
        task = svc.get_tasks()[0]
        assert task.short_circuit is False

        svc.config = MechanicConfig(
            task_sources=[str(tmp_path)], short_circuit_evaluation=True
        )

        assert task.short_circuit is True


class TestConcurrentPasses:
    def test_history_records_every_pass(self):
        svc = _service(MechanicConfig(history_limit=100))
        svc.register_task(FakeTask("ok", satisfied=True))

        def worker():
            for _ in range(10):
                svc.run_pass()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        history = svc.history
        assert len(history) == 80
        assert len({r.id for r in history}) == 80
        assert all(
            earlier.started_at <= later.started_at
            for earlier, later in zip(history, history[1:])
        )
