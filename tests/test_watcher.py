"""Unit tests for translating file changes into domain events."""

import asyncio
from pathlib import Path

import pytest

from spec_workflow.config import WorkflowSettings
from spec_workflow.dashboard.parser import SpecParser
from spec_workflow.dashboard.watcher import ApprovalWatcher, DirectoryWatcher, SpecWatcher
from spec_workflow.events import (
    ApprovalChangeEvent,
    SpecChangeEvent,
    SteeringChangeEvent,
    TaskUpdateEvent,
)
from spec_workflow.paths import PathUtils


def _spec_watcher(project: Path, settings: WorkflowSettings) -> SpecWatcher:
    return SpecWatcher(project, SpecParser(project), settings)


def _record(watcher, *event_types) -> list:
    received = []
    for event_type in event_types:
        watcher.subscribe(event_type, received.append)
    return received


class TestSpecWatcherTranslation:
    """Test cases for handle_file_change routing."""

    def test_tasks_change_emits_spec_and_task_events(self, project, write_spec, instant_settings):
        watcher = _spec_watcher(project, instant_settings)
        received = _record(watcher, SpecChangeEvent, TaskUpdateEvent)
        path = write_spec('login', 'tasks', '- [ ] 1. Do it\n')

        asyncio.run(watcher.handle_file_change('updated', str(path.resolve())))

        spec_event, task_event = received
        assert isinstance(spec_event, SpecChangeEvent)
        assert spec_event.action == 'updated'
        assert spec_event.spec_name == 'login'
        assert spec_event.document == 'tasks'
        assert spec_event.data.task_progress.total == 1
        assert isinstance(task_event, TaskUpdateEvent)
        assert task_event.spec_name == 'login'

    def test_other_document_emits_only_spec_event(self, project, write_spec, instant_settings):
        watcher = _spec_watcher(project, instant_settings)
        received = _record(watcher, SpecChangeEvent, TaskUpdateEvent)
        path = write_spec('login', 'design', '# Design')

        asyncio.run(watcher.handle_file_change('created', str(path.resolve())))

        assert len(received) == 1
        assert received[0].document == 'design'
        assert received[0].data.phases.design.exists is True

    def test_snapshot_is_read_from_disk(self, project, write_spec, instant_settings):
        watcher = _spec_watcher(project, instant_settings)
        received = _record(watcher, SpecChangeEvent)
        path = write_spec('login', 'tasks', '- [ ] 1. One\n')
        write_spec('login', 'tasks', '- [x] 1. One\n- [ ] 2. Two\n')

        asyncio.run(watcher.handle_file_change('updated', str(path.resolve())))

        progress = received[0].data.task_progress
        assert (progress.total, progress.completed) == (2, 1)

    def test_deleted_omits_snapshot(self, project, instant_settings):
        watcher = _spec_watcher(project, instant_settings)
        received = _record(watcher, SpecChangeEvent, TaskUpdateEvent)
        path = PathUtils.get_spec_path(watcher.project_path, 'login') / 'tasks.md'

        asyncio.run(watcher.handle_file_change('deleted', str(path)))

        assert received[0].action == 'deleted'
        assert received[0].data is None
        assert isinstance(received[1], TaskUpdateEvent)

    def test_steering_change_carries_status(self, project, instant_settings):
        watcher = _spec_watcher(project, instant_settings)
        received = _record(watcher, SteeringChangeEvent)
        path = PathUtils.get_steering_path(watcher.project_path) / 'tech.md'
        path.write_text('# Tech', encoding='utf-8')

        asyncio.run(watcher.handle_file_change('created', str(path)))

        assert received[0].document_name == 'tech'
        assert received[0].steering_status.documents.tech is True
        assert received[0].steering_status.documents.product is False

    def test_windows_separators_are_normalized(self, project, write_spec, instant_settings):
        watcher = _spec_watcher(project, instant_settings)
        received = _record(watcher, SpecChangeEvent)
        path = write_spec('login', 'requirements', '# Req')

        asyncio.run(watcher.handle_file_change('updated', str(path.resolve()).replace('/', '\\')))

        assert received[0].spec_name == 'login'

    def test_irrelevant_paths_are_ignored(self, project, instant_settings):
        watcher = _spec_watcher(project, instant_settings)
        received = _record(watcher, SpecChangeEvent, SteeringChangeEvent, TaskUpdateEvent)
        root = watcher.project_path

        for path in [
            PathUtils.get_spec_path(root, 'login') / 'notes.txt',
            PathUtils.get_steering_path(root) / 'nested' / 'product.md',
            PathUtils.get_templates_path(root) / 'tasks-template.md',
            root / 'README.md',
        ]:
            asyncio.run(watcher.handle_file_change('updated', str(path)))

        assert received == []

    def test_spec_directory_events(self, project, write_spec, instant_settings):
        watcher = _spec_watcher(project, instant_settings)
        received = _record(watcher, SpecChangeEvent)
        write_spec('login', 'requirements', '# Req')
        spec_dir = PathUtils.get_spec_path(watcher.project_path, 'login')

        asyncio.run(watcher.handle_file_change('created', str(spec_dir), is_directory=True))
        asyncio.run(watcher.handle_file_change('deleted', str(spec_dir), is_directory=True))

        assert [(e.action, e.document) for e in received] == [('created', None), ('deleted', None)]


class TestApprovalWatcher:
    """Test cases for approval file changes."""

    def test_json_change_emits_event(self, project, instant_settings):
        watcher = ApprovalWatcher(project, instant_settings)
        received = _record(watcher, ApprovalChangeEvent)
        path = PathUtils.get_spec_approval_path(watcher.project_path, 'login') / 'approval_1_abc.json'

        asyncio.run(watcher.handle_file_change('created', str(path)))
        asyncio.run(watcher.handle_file_change('updated', str(path.with_name('.approval_1_abc.json.1a2b.tmp'))))

        assert [e.action for e in received] == ['created']


class TestWatcherLifecycle:
    """Test cases for start/stop and stale reactions."""

    def test_repeated_start_stop_releases_everything(self, project, instant_settings):
        watcher = _spec_watcher(project, instant_settings)

        async def cycle():
            for _ in range(3):
                await watcher.start()
                assert watcher.is_running
                watcher.subscribe(SpecChangeEvent, lambda event: None)
                await watcher.stop()
                assert not watcher.is_running
                assert watcher.events.subscriber_count() == 0

        asyncio.run(cycle())

    def test_stop_discards_pending_reactions(self, project, write_spec):
        watcher = _spec_watcher(project, WorkflowSettings(debounce_seconds=0.05))
        path = write_spec('login', 'tasks', '- [ ] 1. Do it\n')

        async def scenario():
            reaction = asyncio.ensure_future(watcher.handle_file_change('updated', str(path.resolve())))
            await asyncio.sleep(0)
            await watcher.stop()
            received = _record(watcher, SpecChangeEvent, TaskUpdateEvent)
            await reaction
            return received

        assert asyncio.run(scenario()) == []

    def test_unsubscribe_is_idempotent(self, project, write_spec, instant_settings):
        watcher = _spec_watcher(project, instant_settings)
        received = []
        unsubscribe = watcher.subscribe(SpecChangeEvent, received.append)
        path = write_spec('login', 'design', '# Design')

        unsubscribe()
        unsubscribe()
        asyncio.run(watcher.handle_file_change('updated', str(path.resolve())))

        assert received == []

    def test_detects_real_file_write(self, project, instant_settings):
        watcher = _spec_watcher(project, instant_settings)

        async def scenario():
            loop = asyncio.get_running_loop()
            seen = loop.create_future()

            def on_task_update(event):
                if not seen.done():
                    seen.set_result(event)

            spec_dir = PathUtils.get_spec_path(watcher.project_path, 'login')
            spec_dir.mkdir(parents=True)
            watcher.subscribe(TaskUpdateEvent, on_task_update)
            await watcher.start()
            try:
                (spec_dir / 'tasks.md').write_text('- [ ] 1. Do it\n', encoding='utf-8')
                return await asyncio.wait_for(seen, timeout=5)
            finally:
                await watcher.stop()

        event = asyncio.run(scenario())

        assert event.spec_name == 'login'


class TestDebounce:
    """Test cases for which actions wait out the debounce window."""

    def test_deleted_is_not_debounced(self, project, write_spec):
        watcher = _spec_watcher(project, WorkflowSettings(debounce_seconds=5))
        received = _record(watcher, SpecChangeEvent, TaskUpdateEvent)
        path = str(write_spec('login', 'tasks', '- [ ] 1. Do it\n').resolve())

        async def scenario():
            await asyncio.wait_for(watcher.handle_file_change('deleted', path), timeout=1)
            deleted = list(received)

            update = asyncio.ensure_future(watcher.handle_file_change('updated', path))
            await asyncio.sleep(0.1)
            still_waiting = not update.done()
            update.cancel()
            await asyncio.gather(update, return_exceptions=True)
            return deleted, still_waiting

        deleted, still_waiting = asyncio.run(scenario())

        assert [type(e) for e in deleted] == [SpecChangeEvent, TaskUpdateEvent]
        assert deleted[0].action == 'deleted'
        assert still_waiting
        assert len(received) == 2

    def test_approval_deleted_is_not_debounced(self, project):
        watcher = ApprovalWatcher(project, WorkflowSettings(debounce_seconds=5))
        received = _record(watcher, ApprovalChangeEvent)
        path = PathUtils.get_spec_approval_path(watcher.project_path, 'login') / 'approval_1_abc.json'

        asyncio.run(asyncio.wait_for(watcher.handle_file_change('deleted', str(path)), timeout=1))

        assert [e.action for e in received] == ['deleted']


class TestGenerations:
    """Test cases for reactions observed before a restart."""

    def test_directory_watcher_is_abstract(self, project):
        with pytest.raises(TypeError):
            DirectoryWatcher(project)

    def test_reaction_keeps_its_dispatch_generation(self, project, write_spec, instant_settings):
        watcher = _spec_watcher(project, instant_settings)
        path = str(write_spec('login', 'tasks', '- [ ] 1. Do it\n').resolve())

        async def scenario():
            await watcher.start()
            observed_in = watcher._generation
            await watcher.stop()
            await watcher.start()
            received = _record(watcher, SpecChangeEvent, TaskUpdateEvent)
            try:
                await watcher._react('updated', path, False, observed_in)
                stale = list(received)
                await watcher._react('updated', path, False, watcher._generation)
            finally:
                await watcher.stop()
            return stale, received

        stale, received = asyncio.run(scenario())

        assert stale == []
        assert [type(e) for e in received] == [SpecChangeEvent, TaskUpdateEvent]
