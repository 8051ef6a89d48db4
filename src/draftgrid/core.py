"""Framework agnostic grid core.

:class:`GridCore` is what a front-end binds to.  It owns the
:class:`~draftgrid.draft.DraftEngine` and :class:`~draftgrid.presets.PresetStore`
of one view, keeps a small :class:`GridState` for rendering and reports
outcomes through the callbacks of an :class:`EventBus`.  Remote work
(loading, committing, deleting) runs in a thread pool and hands back a
:class:`~concurrent.futures.Future`; editing and preset operations are
synchronous.  Every operation either returns a result or raises a typed
:class:`~draftgrid.errors.DraftGridError` after emitting it on the bus.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Hashable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, TypeVar

from .config import Settings, load_settings
from .draft import CommitReport, DraftEngine, EditState, RefreshResult
from .errors import CommitError, DraftGridError, PersistenceWarning, UnsavedChangesError
from .fields import FieldRegistry
from .gateway import CollectionGateway, HttpCollectionGateway
from .kvstore import store_for_path
from .presets import Direction, EditBuffer, PresetStore, ViewPreset
from .snapshot import SnapshotStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Grid state
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class GridState:
    """In-memory summary of a grid used by the view layer."""

    view: str
    edit_state: EditState = EditState.VIEWING
    record_count: int = 0
    pending_count: int = 0
    active_preset: str | None = None
    editing_preset: str | None = None
    deferred_refresh: bool = False
    stale: bool = False
    last_report: CommitReport | None = None


@dataclass(frozen=True)
class GridView:
    """Rows and columns to render right now."""

    fields: list[str]
    records: list[dict[str, Any]] = field(default_factory=list)
    pending_count: int = 0
    state: EditState = EditState.VIEWING


# ---------------------------------------------------------------------------
# Event handling
# ---------------------------------------------------------------------------


class EventBus:
    """Simple callback based pub/sub system."""

    def __init__(self) -> None:
        self.on_state_changed: list[Callable[[GridState], None]] = []
        self.on_error: list[Callable[[str], None]] = []
        self.on_toast: list[Callable[[str, str], None]] = []
        self.on_confirm: list[Callable[[str, str], bool]] = []
        self.on_progress: list[Callable[[bool], None]] = []

    # Emit helpers -----------------------------------------------------
    def emit_state(self, state: GridState) -> None:
        for cb in list(self.on_state_changed):
            cb(state)

    def emit_error(self, msg: str) -> None:
        for cb in list(self.on_error):
            cb(msg)

    def emit_toast(self, msg: str, level: str = "info") -> None:
        for cb in list(self.on_toast):
            cb(msg, level)

    def emit_progress(self, started: bool) -> None:
        for cb in list(self.on_progress):
            cb(started)

    def confirm(self, title: str, msg: str) -> bool:
        """Ask every confirm handler; no handler means no."""
        handlers = list(self.on_confirm)
        if not handlers:
            return False
        return all(cb(title, msg) for cb in handlers)


# ---------------------------------------------------------------------------
# Grid core
# ---------------------------------------------------------------------------


class GridCore:
    """Mediator between a grid view, its draft engine and its presets."""

    def __init__(
        self,
        fields: FieldRegistry,
        gateway: CollectionGateway,
        presets: PresetStore,
        *,
        view: str = "default",
        policy: str = "fail_fast",
        id_field: str = "id",
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.fields = fields
        self.engine = DraftEngine(
            fields,
            gateway,
            snapshot=SnapshotStore(id_field=id_field),
            policy=policy,  # type: ignore[arg-type]
        )
        self.presets = presets
        self.state = GridState(view=view)
        self.events = EventBus()
        self._executor = executor or ThreadPoolExecutor(max_workers=2)
        self._lock = threading.Lock()
        self._sync_state(emit=False)

    @classmethod
    def from_settings(
        cls,
        resource: str,
        fields: FieldRegistry,
        settings: Settings | None = None,
        *,
        view: str | None = None,
        **kwargs: Any,
    ) -> GridCore:
        """Build a core talking to ``<api_url>/<resource>`` with file-backed presets."""
        settings = settings or load_settings()
        gateway = HttpCollectionGateway(
            settings.api_url, resource, token=settings.token, timeout=settings.timeout
        )
        view = view or resource
        presets = PresetStore(
            store_for_path(settings.presets_path()), view=view, fields=fields
        )
        return cls(
            fields, gateway, presets, view=view, policy=settings.commit_policy, **kwargs
        )

    # --- concurrency -------------------------------------------------
    def run_async(self, fn: Callable[[], T]) -> Future[T]:
        """Run ``fn`` in the thread pool and return the future."""

        def runner() -> T:
            try:
                self.events.emit_progress(True)
                return fn()
            finally:
                self.events.emit_progress(False)

        return self._executor.submit(runner)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # --- state -------------------------------------------------------
    def _sync_state(self, *, emit: bool = True) -> None:
        with self._lock:
            self.state.edit_state = self.engine.state
            self.state.record_count = len(self.engine.snapshot)
            self.state.pending_count = self.engine.pending_count()
            self.state.active_preset = self.presets.active_name
            self.state.editing_preset = self.presets.editing_name
            self.state.deferred_refresh = self.engine.has_deferred
            self.state.stale = self.engine.stale
        if emit:
            self.events.emit_state(self.state)

    def _fail(self, exc: Exception) -> None:
        self.events.emit_error(str(exc))
        self.events.emit_toast(str(exc), "error")

    def view(self) -> GridView:
        """Visible records projected onto the active layout."""
        if self.presets.active_order:
            columns = self.presets.visible_fields()
        else:
            columns = self.fields.names()
        id_field = self.engine.snapshot.id_field
        rows = []
        for rec in self.engine.visible_records():
            row = {id_field: rec.get(id_field)}
            row.update({c: rec.get(c) for c in columns})
            rows.append(row)
        return GridView(columns, rows, self.engine.pending_count(), self.engine.state)

    # --- remote commands ---------------------------------------------
    def load(self) -> Future[RefreshResult]:
        """Fetch the collection; held back while edits are pending."""

        def _task() -> RefreshResult:
            try:
                result = self.engine.refresh()
            except DraftGridError as exc:
                self._fail(exc)
                raise
            if result.deferred:
                self.events.emit_toast(
                    "New data is available; it will be shown once pending edits "
                    "are saved or discarded",
                    "warning",
                )
            self._sync_state()
            return result

        return self.run_async(_task)

    def commit(self) -> Future[CommitReport]:
        """Send every pending edit to the API."""

        def _task() -> CommitReport:
            try:
                report = self.engine.commit_all()
            except CommitError as exc:
                with self._lock:
                    self.state.last_report = exc.report
                self._fail(exc)
                self._sync_state()
                raise
            except DraftGridError as exc:
                self._fail(exc)
                raise
            with self._lock:
                self.state.last_report = report
            if report.total:
                self.events.emit_toast(f"Saved: {report.summary()}", "info")
            if report.refresh_error:
                self.events.emit_toast(
                    f"Saved, but reloading failed: {report.refresh_error}", "warning"
                )
            self._sync_state()
            return report

        return self.run_async(_task)

    def delete(self, rid: Hashable) -> Future[None]:
        def _task() -> None:
            try:
                self.engine.delete_record(rid)
            except DraftGridError as exc:
                self._fail(exc)
                raise
            self.events.emit_toast(f"Deleted record {rid}", "info")
            self._sync_state()

        return self.run_async(_task)

    # --- edit commands -----------------------------------------------
    def toggle_edit_mode(self, *, discard: bool = False) -> EditState:
        """Enter edit mode, or leave it.

        Leaving with pending edits requires ``discard=True`` or a positive
        answer from the ``on_confirm`` handlers.
        """
        if not self.engine.editing:
            self.engine.enter_edit_mode()
        else:
            if self.engine.is_dirty and not discard:
                count = self.engine.pending_count()
                discard = self.events.confirm(
                    "Discard changes?", f"{count} unsaved edits will be lost."
                )
                if not discard:
                    exc = UnsavedChangesError(f"{count} unsaved edits")
                    self._fail(exc)
                    raise exc
            self.engine.exit_edit_mode(discard=discard)
        logger.debug("%s edit state is now %s", self.state.view, self.engine.state.value)
        self._sync_state()
        return self.engine.state

    def set_field(self, rid: Hashable, name: str, raw: Any) -> None:
        try:
            self.engine.set_field(rid, name, raw)
        except DraftGridError as exc:
            self._fail(exc)
            raise
        self._sync_state()

    def discard_field(self, rid: Hashable, name: str) -> bool:
        removed = self.engine.discard_field(rid, name)
        self._sync_state()
        return removed

    def apply_deferred(self, *, rebase: bool = False) -> bool:
        applied = self.engine.apply_deferred(rebase=rebase)
        self._sync_state()
        return applied

    # --- preset commands ---------------------------------------------
    def _preset_call(self, fn: Callable[..., T], *args: Any) -> T:
        try:
            result = fn(*args)
        except PersistenceWarning as exc:
            self.events.emit_toast(str(exc), "warning")
            self._sync_state()
            raise
        except DraftGridError as exc:
            self._fail(exc)
            raise
        self._sync_state()
        return result

    def create_preset(
        self, name: str, field_order: list[str], visibility: dict[str, bool] | None = None
    ) -> ViewPreset:
        return self._preset_call(self.presets.create_preset, name, field_order, visibility)

    def apply_preset(self, name: str) -> ViewPreset:
        return self._preset_call(self.presets.apply_preset, name)

    def rename_preset(self, old: str, new: str) -> ViewPreset:
        return self._preset_call(self.presets.rename_preset, old, new)

    def delete_preset(self, name: str) -> None:
        self._preset_call(self.presets.delete_preset, name)

    def begin_editing_preset(self, name: str) -> EditBuffer:
        return self._preset_call(self.presets.begin_editing, name)

    def reorder_field(self, field_name: str, direction: Direction) -> bool:
        return self._preset_call(self.presets.reorder, field_name, direction)

    def toggle_field_visibility(self, field_name: str) -> bool:
        return self._preset_call(self.presets.toggle_visibility, field_name)

    def save_edited_preset(self, new_name: str | None = None) -> ViewPreset:
        return self._preset_call(self.presets.save_edited_preset, new_name)

    def save_as_new_preset(self, name: str) -> ViewPreset:
        return self._preset_call(self.presets.save_buffer_as_new_preset, name)

    def cancel_preset_editing(self) -> None:
        self.presets.cancel_editing()
        self._sync_state()


__all__ = [
    "EventBus",
    "GridCore",
    "GridState",
    "GridView",
]
