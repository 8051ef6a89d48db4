import threading

import pytest

from draftgrid.draft import DraftEngine, EditState
from draftgrid.errors import CommitInProgress, RecordNotFound

from tests.utils import BlockingGateway, FakeGateway, student_fields, student_records


@pytest.fixture
def gw():
    return FakeGateway(student_records())


@pytest.fixture
def engine(gw):
    eng = DraftEngine(student_fields(), gw)
    eng.refresh()
    return eng


def test_refresh_applies_when_viewing(engine, gw):
    gw.records[7]["nom"] = "Remote"
    result = engine.refresh()
    assert result.applied and not result.deferred
    assert result.count == 3
    assert engine.snapshot.value(7, "nom") == "Remote"


def test_refresh_applies_to_clean_draft(engine, gw):
    engine.enter_edit_mode()
    gw.records[7]["nom"] = "Remote"
    assert engine.refresh().applied
    assert engine.draft()[7]["nom"] == "Remote"
    assert engine.state is EditState.EDITING


def test_refresh_deferred_while_dirty(engine, gw):
    engine.enter_edit_mode()
    engine.set_field(9, "age", "12")
    gw.records[7]["nom"] = "Remote"
    result = engine.refresh()
    assert result.deferred and not result.applied
    assert engine.has_deferred
    assert engine.snapshot.value(7, "nom") == "Dupont"
    assert engine.draft()[9]["age"] == "12"


def test_deferred_refresh_applied_once_clean(engine, gw):
    engine.enter_edit_mode()
    engine.set_field(9, "age", "12")
    gw.records[7]["nom"] = "Remote"
    engine.refresh()
    engine.discard_field(9, "age")
    assert not engine.has_deferred
    assert engine.snapshot.value(7, "nom") == "Remote"
    assert engine.draft()[7]["nom"] == "Remote"


def test_deferred_refresh_applied_on_discard_exit(engine, gw):
    engine.enter_edit_mode()
    engine.set_field(9, "age", "12")
    gw.records[7]["nom"] = "Remote"
    engine.refresh()
    engine.exit_edit_mode(discard=True)
    assert not engine.has_deferred
    assert engine.snapshot.value(7, "nom") == "Remote"


def test_apply_deferred_requires_rebase_while_dirty(engine, gw):
    engine.enter_edit_mode()
    engine.set_field(9, "age", "12")
    engine.set_field(3, "nom", "Grand")
    gw.records[7]["nom"] = "Remote"
    del gw.records[3]
    engine.refresh()

    assert engine.apply_deferred() is False
    assert engine.has_deferred

    assert engine.apply_deferred(rebase=True) is True
    assert not engine.has_deferred
    assert engine.snapshot.ids() == [7, 9]
    # edits for the vanished record are dropped, the others are replayed
    assert engine.pending() == {9: {"age": "12"}}
    draft = engine.draft()
    assert draft[7]["nom"] == "Remote"
    assert draft[9]["age"] == "12"
    assert 3 not in draft


def test_apply_deferred_without_pending_refresh(engine):
    assert engine.apply_deferred() is False


def test_refresh_deferred_during_commit():
    gw = BlockingGateway(student_records())
    engine = DraftEngine(student_fields(), gw)
    engine.refresh()
    engine.enter_edit_mode()
    engine.set_field(7, "nom", "Durant")

    thread = threading.Thread(target=engine.commit_all)
    thread.start()
    assert gw.started.wait(timeout=5)
    assert engine.refresh().deferred
    gw.release.set()
    thread.join(timeout=5)
    assert not engine.has_deferred
    assert engine.snapshot.value(7, "nom") == "Durant"


def test_delete_record_reconciles_draft(engine, gw):
    engine.enter_edit_mode()
    engine.set_field(3, "nom", "Grand")
    engine.set_field(7, "nom", "Durant")
    engine.delete_record(3)

    assert ("delete", 3) in gw.calls
    assert engine.snapshot.ids() == [7, 9]
    assert engine.pending() == {7: {"nom": "Durant"}}
    assert engine.draft()[7]["nom"] == "Durant"
    assert 3 not in engine.draft()


def test_delete_unknown_record_propagates(engine):
    with pytest.raises(RecordNotFound):
        engine.delete_record(42)
    assert engine.snapshot.ids() == [3, 7, 9]


def test_delete_refused_while_committing(engine):
    engine._committing = True
    with pytest.raises(CommitInProgress):
        engine.delete_record(3)
