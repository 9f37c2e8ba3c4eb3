"""Tests for trellis.api module."""

from pathlib import Path

import pytest

from trellis.api import (
    AlreadyActiveError,
    IncompletePipelineError,
    InvalidTransitionError,
    PhaseOutOfRangeError,
    TaskArchivedError,
    TaskNotFoundError,
    UnknownActionError,
    Workflow,
)
from trellis.config import Config
from trellis.ids import archive_month
from trellis.pipeline import Action, PhaseAction
from trellis.state_machine import TaskStatus


def make_started(workflow: Workflow, slug: str, pipeline) -> str:
    task = workflow.create_task(slug.title(), slug, pipeline=pipeline)
    workflow.start_task(task.id)
    return task.id


class TestOpen:
    """Tests for Workflow construction."""

    def test_open_from_subdirectory(self, repo_root: Path) -> None:
        """Workflow.open finds the root above a nested directory."""
        (repo_root / ".trellis" / "config.yaml").write_text("developer: carol\n")
        nested = repo_root / "src"
        nested.mkdir()

        wf = Workflow.open(nested)

        assert wf.repo_root == repo_root.resolve()
        assert wf.config.developer == "carol"

    def test_init_creates_layout(self, tmp_path: Path) -> None:
        """init creates tasks/ and tasks/archive/."""
        wf = Workflow(tmp_path, Config())
        tasks_path = wf.init()
        assert tasks_path == tmp_path / ".trellis" / "tasks"
        assert (tasks_path / "archive").is_dir()


class TestCreateAndUpdate:
    """Tests for creating tasks and editing metadata."""

    def test_create_task(self, workflow: Workflow) -> None:
        """New tasks are planning at phase 0 with an empty pipeline."""
        task = workflow.create_task("Fix login", "login-fix")
        assert task.status == TaskStatus.PLANNING
        assert task.current_phase == 0
        assert task.next_action == []

    def test_create_with_pipeline(self, workflow: Workflow) -> None:
        """A pipeline may be given as (phase, action) pairs."""
        task = workflow.create_task("Fix login", pipeline=[(0, "implement"), (1, Action.CHECK)])
        assert [s.action for s in task.next_action] == [Action.IMPLEMENT, Action.CHECK]

    def test_create_with_unknown_action(self, workflow: Workflow) -> None:
        """Unknown pipeline actions are rejected before a directory is made."""
        with pytest.raises(UnknownActionError):
            workflow.create_task("Fix login", "login-fix", pipeline=[(0, "deploy")])
        assert workflow.list_tasks() == []

    def test_default_pipeline(self, workflow: Workflow) -> None:
        """The configured default pipeline converts to PhaseActions."""
        assert workflow.default_pipeline()[-1] == PhaseAction(phase=4, action=Action.CREATE_PR)

    def test_update_metadata(self, workflow: Workflow) -> None:
        """Metadata fields are validated and saved."""
        task = workflow.create_task("Fix login", "login-fix")

        updated = workflow.update_metadata(
            task.id, branch="feature/login-fix", priority="P0", related_files=["src/auth.py"]
        )

        reloaded = workflow.get_task(task.id)
        assert updated.branch == reloaded.branch == "feature/login-fix"
        assert reloaded.priority.value == "P0"
        assert reloaded.related_files == ["src/auth.py"]

    def test_update_lifecycle_field_rejected(self, workflow: Workflow) -> None:
        """Status and phase only change through lifecycle operations."""
        task = workflow.create_task("Fix login", "login-fix")
        with pytest.raises(ValueError, match="Not a metadata field: status"):
            workflow.update_metadata(task.id, status="completed")


class TestSetPipeline:
    """Tests for set_pipeline."""

    def test_replaces_pipeline(self, workflow: Workflow) -> None:
        """The pipeline is replaced wholesale."""
        task = workflow.create_task("Fix login", "login-fix", pipeline=[(0, "implement")])
        updated = workflow.set_pipeline(task.id, [(0, "implement"), (1, "check"), (1, "debug")])
        assert len(workflow.get_task(task.id).next_action) == 3
        assert updated.current_phase == 0

    def test_decreasing_phases_rejected(self, workflow: Workflow) -> None:
        """Phase numbers must be non-decreasing."""
        task = workflow.create_task("Fix login", "login-fix")
        with pytest.raises(ValueError):
            workflow.set_pipeline(task.id, [(2, "implement"), (1, "check")])

    def test_shrinking_below_current_phase_rejected(self, workflow: Workflow) -> None:
        """A pipeline shorter than current_phase would leave the task stranded."""
        task_id = make_started(workflow, "login-fix", [(0, "implement"), (1, "check"), (2, "finish")])
        workflow.advance_phase(task_id)
        workflow.advance_phase(task_id)

        with pytest.raises(PhaseOutOfRangeError):
            workflow.set_pipeline(task_id, [(0, "implement")])

    def test_completed_task_rejected(self, workflow: Workflow) -> None:
        """A completed task's pipeline is frozen."""
        task_id = make_started(workflow, "login-fix", [(0, "implement")])
        workflow.complete_task(task_id)
        with pytest.raises(InvalidTransitionError):
            workflow.set_pipeline(task_id, [(0, "check")])


class TestStartTask:
    """Tests for start_task."""

    def test_start_sets_pointer_and_status(self, workflow: Workflow) -> None:
        """Starting moves planning to in_progress and points at the task."""
        task = workflow.create_task("Fix login", "login-fix")
        started = workflow.start_task(task.id)
        assert started.status == TaskStatus.IN_PROGRESS
        assert workflow.pointer.get() == "login-fix"
        assert workflow.current_task().id == "login-fix"

    def test_restart_is_noop(self, workflow: Workflow) -> None:
        """Starting the current task again changes nothing."""
        task_id = make_started(workflow, "login-fix", [])
        again = workflow.start_task(task_id)
        assert again.status == TaskStatus.IN_PROGRESS
        assert workflow.pointer.get() == task_id

    def test_second_task_rejected(self, workflow: Workflow) -> None:
        """Only one task can be current at a time."""
        first = make_started(workflow, "first", [])
        second = workflow.create_task("Second", "second")

        with pytest.raises(AlreadyActiveError) as exc_info:
            workflow.start_task(second.id)

        assert exc_info.value.active_id == first
        assert workflow.pointer.get() == first
        assert workflow.get_task(second.id).status == TaskStatus.PLANNING

    def test_force_switches(self, workflow: Workflow) -> None:
        """force=True switches the pointer without touching the old task."""
        first = make_started(workflow, "first", [])
        second = workflow.create_task("Second", "second")

        workflow.start_task(second.id, force=True)

        assert workflow.pointer.get() == "second"
        assert workflow.get_task(first).status == TaskStatus.IN_PROGRESS

    def test_resume_in_progress_task(self, workflow: Workflow) -> None:
        """A finished session can be resumed by starting again."""
        task_id = make_started(workflow, "login-fix", [])
        workflow.finish_task(task_id)
        workflow.start_task(task_id)
        assert workflow.pointer.get() == task_id

    def test_stale_pointer_replaced(self, workflow: Workflow) -> None:
        """A pointer to a task that no longer exists does not block starting."""
        task = workflow.create_task("Fix login", "login-fix")
        workflow.pointer.path.write_text("deleted-task\n")

        assert workflow.current_task() is None
        workflow.start_task(task.id)
        assert workflow.pointer.get() == "login-fix"

    def test_unknown_task(self, workflow: Workflow) -> None:
        """Unknown ids raise TaskNotFoundError."""
        with pytest.raises(TaskNotFoundError):
            workflow.start_task("nope")

    def test_completed_task_cannot_start(self, workflow: Workflow) -> None:
        """There is no way back from completed."""
        task_id = make_started(workflow, "login-fix", [(0, "implement")])
        workflow.complete_task(task_id)
        workflow.finish_task()
        with pytest.raises(InvalidTransitionError):
            workflow.start_task(task_id)


class TestAdvancePhase:
    """Tests for advance_phase."""

    def test_advance(self, workflow: Workflow) -> None:
        """Each advance moves current_phase by one."""
        task_id = make_started(workflow, "login-fix", [(0, "implement"), (1, "check")])
        task = workflow.advance_phase(task_id)
        assert task.current_phase == 1
        assert workflow.get_task(task_id).current_phase == 1

    def test_advance_past_last_rejected(self, workflow: Workflow) -> None:
        """The last step cannot be advanced past."""
        task_id = make_started(workflow, "login-fix", [(0, "implement")])
        with pytest.raises(PhaseOutOfRangeError) as exc_info:
            workflow.advance_phase(task_id)
        assert exc_info.value.length == 1
        assert workflow.get_task(task_id).current_phase == 0

    def test_advance_empty_pipeline_rejected(self, workflow: Workflow) -> None:
        """An empty pipeline has nothing to advance to."""
        task_id = make_started(workflow, "login-fix", [])
        with pytest.raises(PhaseOutOfRangeError):
            workflow.advance_phase(task_id)

    def test_advance_planning_rejected(self, workflow: Workflow) -> None:
        """Only in-progress tasks advance."""
        task = workflow.create_task("Fix login", "login-fix", pipeline=[(0, "implement"), (1, "check")])
        with pytest.raises(InvalidTransitionError):
            workflow.advance_phase(task.id)


class TestFinishTask:
    """Tests for finish_task."""

    def test_finish_clears_pointer_keeps_status(self, workflow: Workflow) -> None:
        """finish ends the session without completing the task."""
        task_id = make_started(workflow, "login-fix", [])
        assert workflow.finish_task(task_id) == task_id
        assert workflow.pointer.get() is None
        assert workflow.get_task(task_id).status == TaskStatus.IN_PROGRESS

    def test_finish_without_id(self, workflow: Workflow) -> None:
        """With no id, whatever is current is cleared."""
        task_id = make_started(workflow, "login-fix", [])
        assert workflow.finish_task() == task_id
        assert workflow.finish_task() is None

    def test_finish_non_current_task(self, workflow: Workflow) -> None:
        """Finishing a task that is not current leaves the pointer alone."""
        first = make_started(workflow, "first", [])
        second = workflow.create_task("Second", "second")
        workflow.start_task(second.id, force=True)

        assert workflow.finish_task(first) is None
        assert workflow.pointer.get() == "second"

    def test_finish_planning_rejected(self, workflow: Workflow) -> None:
        """A task never started has no session to finish."""
        task = workflow.create_task("Fix login", "login-fix")
        with pytest.raises(InvalidTransitionError):
            workflow.finish_task(task.id)


class TestCompleteAndArchive:
    """Tests for complete_task and archive_task."""

    def test_complete_on_last_phase(self, workflow: Workflow) -> None:
        """Completing on the last step sets status and completedAt."""
        task_id = make_started(workflow, "login-fix", [(0, "implement"), (1, "check")])
        workflow.advance_phase(task_id)

        task = workflow.complete_task(task_id)

        assert task.status == TaskStatus.COMPLETED
        assert task.completed_at is not None
        assert workflow.get_task(task_id).to_record()["completedAt"] == task.completed_at

    def test_complete_early_rejected(self, workflow: Workflow) -> None:
        """Tasks cannot skip the rest of their pipeline."""
        task_id = make_started(workflow, "login-fix", [(0, "implement"), (1, "check")])
        with pytest.raises(IncompletePipelineError):
            workflow.complete_task(task_id)
        assert workflow.get_task(task_id).status == TaskStatus.IN_PROGRESS

    def test_complete_empty_pipeline_rejected(self, workflow: Workflow) -> None:
        """A task with no pipeline can never reach its last phase."""
        task_id = make_started(workflow, "login-fix", [])
        with pytest.raises(IncompletePipelineError):
            workflow.complete_task(task_id)

    def test_complete_planning_rejected(self, workflow: Workflow) -> None:
        """Only in-progress tasks complete."""
        task = workflow.create_task("Fix login", "login-fix", pipeline=[(0, "implement")])
        with pytest.raises(InvalidTransitionError):
            workflow.complete_task(task.id)

    def test_archive_moves_and_clears_pointer(self, workflow: Workflow, repo_root: Path) -> None:
        """Archiving moves the directory and clears a pointer to the task."""
        task_id = make_started(workflow, "login-fix", [(0, "implement")])
        workflow.complete_task(task_id)

        task = workflow.archive_task(task_id)

        assert task.status == TaskStatus.ARCHIVED
        assert task.dir.parent.parent == repo_root / ".trellis" / "tasks" / "archive"
        assert task.completed_at is not None
        assert workflow.pointer.get() is None
        assert workflow.list_tasks() == []
        assert workflow.get_task(task_id).status == TaskStatus.ARCHIVED

    def test_archive_in_progress_rejected(self, workflow: Workflow) -> None:
        """Only completed tasks can be archived."""
        task_id = make_started(workflow, "login-fix", [(0, "implement")])
        with pytest.raises(InvalidTransitionError):
            workflow.archive_task(task_id)

    def test_archived_task_is_read_only(self, workflow: Workflow) -> None:
        """Operations on an archived task raise TaskArchivedError."""
        task_id = make_started(workflow, "login-fix", [(0, "implement")])
        workflow.complete_task(task_id)
        workflow.archive_task(task_id)

        with pytest.raises(TaskArchivedError):
            workflow.start_task(task_id)
        with pytest.raises(TaskArchivedError):
            workflow.update_metadata(task_id, notes="late")
        with pytest.raises(TaskArchivedError):
            workflow.archive_task(task_id)

    def test_archived_id_cannot_be_recreated(self, workflow: Workflow) -> None:
        """An archived id stays taken, so its archive stays addressable."""
        task_id = make_started(workflow, "login-fix", [(0, "implement")])
        workflow.complete_task(task_id)
        workflow.archive_task(task_id)

        with pytest.raises(ValueError, match="archive"):
            workflow.create_task("Fix login again", "login-fix")
        with pytest.raises(TaskArchivedError):
            workflow.resolve_context(task_id, "implement")

    def test_failed_archive_keeps_pointer(self, workflow: Workflow) -> None:
        """If the directory cannot move, the task stays completed and current."""
        task_id = make_started(workflow, "login-fix", [(0, "implement")])
        task = workflow.complete_task(task_id)
        (workflow.store.archive_path / archive_month() / task.dir_name).mkdir(parents=True)

        with pytest.raises(FileExistsError):
            workflow.archive_task(task_id)

        assert workflow.pointer.get() == task_id
        assert workflow.get_task(task_id).status == TaskStatus.COMPLETED
