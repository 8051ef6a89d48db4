import pytest

from draftgrid.config import Settings
from draftgrid.core import GridCore
from draftgrid.draft import EditState
from draftgrid.errors import (
    CommitError,
    GatewayError,
    InvalidPresetError,
    NetworkError,
    NotEditable,
    PersistenceWarning,
    UnsavedChangesError,
    ValidationError,
)
from draftgrid.gateway import HttpCollectionGateway
from draftgrid.kvstore import KeyValueStore, MemoryStore
from draftgrid.presets import PresetStore

from tests.utils import FakeGateway, student_fields, student_records


class Recorder:
    def __init__(self, core):
        self.states = []
        self.errors = []
        self.toasts = []
        self.progress = []
        core.events.on_state_changed.append(lambda s: self.states.append(s.edit_state))
        core.events.on_error.append(self.errors.append)
        core.events.on_toast.append(lambda msg, level: self.toasts.append((level, msg)))
        core.events.on_progress.append(self.progress.append)


@pytest.fixture
def gw():
    return FakeGateway(student_records())


@pytest.fixture
def core(gw):
    fields = student_fields()
    presets = PresetStore(MemoryStore(), view="students", fields=fields)
    c = GridCore(fields, gw, presets, view="students")
    c.load().result(timeout=5)
    yield c
    c.shutdown()


def test_load_fills_state(core):
    assert core.state.record_count == 3
    assert core.state.edit_state is EditState.VIEWING
    assert core.state.view == "students"


def test_progress_reported_around_remote_work(core):
    rec = Recorder(core)
    core.load().result(timeout=5)
    assert rec.progress == [True, False]


def test_edit_and_commit_cycle(core, gw):
    rec = Recorder(core)
    core.toggle_edit_mode()
    core.set_field(7, "nom", "Durant")
    assert core.state.pending_count == 1
    assert core.state.edit_state is EditState.EDITING_DIRTY
    report = core.commit().result(timeout=5)
    assert report.ok
    assert core.state.last_report is report
    assert core.state.edit_state is EditState.VIEWING
    assert ("info", "Saved: updated 1 of 1 records") in rec.toasts
    assert gw.records[7]["nom"] == "Durant"
    assert rec.states[-1] is EditState.VIEWING


def test_failed_commit_is_reported(gw):
    gw.fail[9] = ValidationError("age refused", status=422)
    fields = student_fields()
    core = GridCore(fields, gw, PresetStore(MemoryStore(), fields=fields))
    rec = Recorder(core)
    core.load().result(timeout=5)
    core.toggle_edit_mode()
    core.set_field(7, "nom", "Durant")
    core.set_field(9, "age", "12")
    with pytest.raises(CommitError):
        core.commit().result(timeout=5)
    core.shutdown()
    assert core.state.pending_count == 1
    assert core.state.last_report.failed == [(9, "age refused")]
    assert any("failed at record 9" in e for e in rec.errors)
    assert ("error", rec.errors[-1]) in rec.toasts


def test_deferred_load_warns(core, gw):
    rec = Recorder(core)
    core.toggle_edit_mode()
    core.set_field(7, "nom", "Durant")
    gw.records[9]["nom"] = "Remote"
    result = core.load().result(timeout=5)
    assert result.deferred
    assert core.state.deferred_refresh
    assert [level for level, _ in rec.toasts] == ["warning"]
    assert core.apply_deferred(rebase=True)
    assert not core.state.deferred_refresh
    assert core.view().records[2]["nom"] == "Remote"


def test_set_field_errors_are_emitted(core):
    rec = Recorder(core)
    with pytest.raises(NotEditable):
        core.set_field(7, "nom", "Durant")
    assert rec.errors == ["edit mode is not active"]


def test_leaving_dirty_edit_mode_needs_confirmation(core):
    core.toggle_edit_mode()
    core.set_field(7, "nom", "Durant")
    with pytest.raises(UnsavedChangesError):
        core.toggle_edit_mode()
    assert core.state.edit_state is EditState.EDITING_DIRTY

    asked = []
    core.events.on_confirm.append(lambda title, msg: asked.append(msg) or True)
    assert core.toggle_edit_mode() is EditState.VIEWING
    assert asked == ["1 unsaved edits will be lost."]
    assert core.engine.pending() == {}


def test_discard_flag_skips_confirmation(core):
    core.toggle_edit_mode()
    core.set_field(7, "nom", "Durant")
    assert core.toggle_edit_mode(discard=True) is EditState.VIEWING


def test_discard_field(core):
    core.toggle_edit_mode()
    core.set_field(7, "nom", "Durant")
    assert core.discard_field(7, "nom")
    assert core.state.edit_state is EditState.EDITING


def test_delete(core, gw):
    rec = Recorder(core)
    core.delete(3).result(timeout=5)
    assert 3 not in gw.records
    assert core.state.record_count == 2
    assert ("info", "Deleted record 3") in rec.toasts


def test_view_uses_active_preset(core):
    view = core.view()
    assert view.fields == student_fields().names()
    core.create_preset("compact", ["nom", "prenom"], {"prenom": False})
    core.apply_preset("compact")
    assert core.state.active_preset == "compact"
    view = core.view()
    assert view.fields == ["nom"]
    assert view.records[0] == {"id": 3, "nom": "Petit"}


def test_view_shows_draft_while_editing(core):
    core.toggle_edit_mode()
    core.set_field(7, "nom", "Durant")
    view = core.view()
    assert view.state is EditState.EDITING_DIRTY
    assert view.pending_count == 1
    assert view.records[1]["nom"] == "Durant"


def test_preset_editing_through_core(core):
    core.create_preset("compact", ["nom", "prenom"])
    core.begin_editing_preset("compact")
    assert core.state.editing_preset == "compact"
    assert core.reorder_field("prenom", "up")
    assert core.toggle_field_visibility("nom") is False
    core.save_edited_preset()
    assert core.state.editing_preset is None
    assert core.presets.get("compact").field_order == ["prenom", "nom"]
    core.begin_editing_preset("compact")
    core.cancel_preset_editing()
    assert core.state.editing_preset is None
    core.save_as_new_preset("copy")
    core.rename_preset("copy", "copie")
    core.delete_preset("copie")
    assert core.presets.names() == ["compact"]


def test_preset_errors_are_emitted(core):
    rec = Recorder(core)
    with pytest.raises(InvalidPresetError):
        core.create_preset("", ["nom"])
    assert rec.errors


class FailingStore(KeyValueStore):
    def read(self, key):
        return None

    def write(self, key, value):
        raise OSError("read-only")


def test_persistence_warning_becomes_toast(gw):
    fields = student_fields()
    core = GridCore(fields, gw, PresetStore(FailingStore(), fields=fields))
    rec = Recorder(core)
    with pytest.raises(PersistenceWarning):
        core.create_preset("compact", ["nom"])
    core.shutdown()
    assert rec.errors == []
    assert rec.toasts[0][0] == "warning"
    assert core.presets.names() == ["compact"]


def test_from_settings(tmp_path):
    settings = Settings(
        api_url="http://api.local",
        token="t",
        presets_file=tmp_path / "presets.yaml",
        commit_policy="continue",
    )
    core = GridCore.from_settings("users", student_fields(), settings)
    try:
        assert isinstance(core.engine.gateway, HttpCollectionGateway)
        assert core.engine.gateway._url() == "http://api.local/users"
        assert core.engine.policy == "continue"
        assert core.presets.key == "draftgrid.presets.users"
        core.create_preset("compact", ["nom"])
        assert (tmp_path / "presets.yaml").exists()
    finally:
        core.shutdown()


def test_malformed_payload_reaches_error_handlers(core, gw):
    rec = Recorder(core)
    gw.fetch_all = lambda: [{"id": 3}, {"id": 3}]
    with pytest.raises(GatewayError):
        core.load().result(timeout=5)
    assert rec.errors == ["malformed collection: duplicate record id: 3"]
    assert core.state.record_count == 3


def test_stale_snapshot_flagged_after_failed_reload(core, gw):
    rec = Recorder(core)
    core.toggle_edit_mode()
    core.set_field(7, "nom", "Durant")
    gw.fetch_error = NetworkError("timeout")
    report = core.commit().result(timeout=5)
    assert report.refresh_error == "timeout"
    assert core.state.stale
    assert core.view().records[1]["nom"] == "Durant"
    assert ("warning", "Saved, but reloading failed: timeout") in rec.toasts

    gw.fetch_error = None
    core.load().result(timeout=5)
    assert not core.state.stale
