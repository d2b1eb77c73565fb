"""Saved views: named snapshots of filters, KPI selection and scope.

The store talks to a small repository interface so the storage medium can be
swapped. Mutations report failures as ``ViewResult`` values instead of raising.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from pydantic import ValidationError

from kpi_core.catalog import KPI, KPI_CATALOG
from kpi_core.dimensions import Scope
from kpi_core.errors import InvalidSelectionError
from kpi_core.filters import FilterSelection, enforce_granularity, normalize_filters
from kpi_core.schemas import FilterSelectionModel, SavedViewRecord
from kpi_core.settings import saved_views_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SavedView:
    id: str
    name: str
    filters: FilterSelection
    kpis: Tuple[str, ...]
    scope: Scope
    created_at: datetime
    updated_at: datetime
    description: Optional[str] = None
    scope_label: Optional[str] = None


def view_to_record(view: SavedView) -> SavedViewRecord:
    return SavedViewRecord(
        id=view.id,
        name=view.name,
        description=view.description,
        filters=FilterSelectionModel.from_selection(view.filters),
        kpis=list(view.kpis),
        scope=view.scope,
        scope_label=view.scope_label,
        created_at=view.created_at,
        updated_at=view.updated_at,
    )


def record_to_view(record: SavedViewRecord) -> SavedView:
    return SavedView(
        id=record.id,
        name=record.name,
        description=record.description,
        filters=record.filters.to_selection(),
        kpis=tuple(record.kpis),
        scope=record.scope,
        scope_label=record.scope_label,
        created_at=record.created_at,
        updated_at=record.updated_at or record.created_at,
    )


def parse_record(entry: Any, idx: int = 0) -> Optional[SavedView]:
    try:
        return record_to_view(SavedViewRecord.model_validate(entry))
    except (ValidationError, ValueError, TypeError) as exc:
        ident = entry.get("id") if isinstance(entry, dict) else None
        logger.warning("skipping saved view #%d (id=%s): %s", idx, ident, exc)
        return None


def parse_records(entries: Iterable[Any]) -> List[SavedView]:
    """Validate raw persisted entries, skipping any that fail the schema."""
    views = (parse_record(entry, idx) for idx, entry in enumerate(entries))
    return [v for v in views if v is not None]


class ViewRepository(Protocol):
    def list(self) -> List[SavedView]: ...

    def get(self, view_id: str) -> Optional[SavedView]: ...

    def put(self, view: SavedView) -> None: ...

    def delete(self, view_id: str) -> bool: ...


class InMemoryViewRepository:
    def __init__(self, views: Iterable[SavedView] = ()) -> None:
        self._views: Dict[str, SavedView] = {v.id: v for v in views}

    def list(self) -> List[SavedView]:
        return list(self._views.values())

    def get(self, view_id: str) -> Optional[SavedView]:
        return self._views.get(view_id)

    def put(self, view: SavedView) -> None:
        self._views[view.id] = view

    def delete(self, view_id: str) -> bool:
        return self._views.pop(view_id, None) is not None


# a parsed view, or None alongside the raw entry that failed validation
_Slot = Tuple[Optional[SavedView], Any]


class JsonFileViewRepository:
    """Saved views kept as a JSON array in one local file.

    Every read goes back to disk. Writes replace the file atomically and carry
    entries that fail validation through unchanged. A file that cannot be read
    at all is moved aside to ``<name>.corrupt-<timestamp>`` before the first
    write, never overwritten.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None) -> None:
        self.path = Path(path) if path is not None else saved_views_path()

    def _read_entries(self) -> Optional[List[Any]]:
        """Raw entries, or None when the file exists but is unusable."""
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        except (OSError, ValueError):
            logger.exception("failed to read saved views from %s", self.path)
            return None
        if not isinstance(data, list):
            logger.warning("saved views file %s does not hold a list; ignoring it", self.path)
            return None
        return data

    def _set_aside(self) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        target = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        os.replace(self.path, target)
        logger.warning("moved unreadable saved views file %s to %s", self.path, target)
        return target

    def _slots(self, entries: List[Any]) -> List[_Slot]:
        return [(parse_record(entry, idx), entry) for idx, entry in enumerate(entries)]

    def _write(self, slots: Sequence[_Slot]) -> None:
        payload = [view_to_record(v).to_json() if v is not None else raw for v, raw in slots]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".views-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def list(self) -> List[SavedView]:
        return parse_records(self._read_entries() or [])

    def get(self, view_id: str) -> Optional[SavedView]:
        return next((v for v in self.list() if v.id == view_id), None)

    def put(self, view: SavedView) -> None:
        entries = self._read_entries()
        if entries is None:
            self._set_aside()
            entries = []
        slots = self._slots(entries)
        for idx, (existing, _) in enumerate(slots):
            if existing is not None and existing.id == view.id:
                slots[idx] = (view, None)
                break
        else:
            slots.append((view, None))
        self._write(slots)

    def delete(self, view_id: str) -> bool:
        entries = self._read_entries()
        if entries is None:
            return False
        slots = self._slots(entries)
        kept = [(v, raw) for v, raw in slots if v is None or v.id != view_id]
        if len(kept) == len(slots):
            return False
        self._write(kept)
        return True


class ViewError(str, Enum):
    INVALID_NAME = "invalid_name"
    INVALID_FILTERS = "invalid_filters"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class RestoredView:
    filters: FilterSelection
    kpis: Tuple[KPI, ...]
    scope: Scope
    scope_label: Optional[str] = None
    dropped_kpi_ids: Tuple[str, ...] = ()

    @property
    def kpi_ids(self) -> List[str]:
        return [k.id for k in self.kpis]


@dataclass(frozen=True)
class ViewResult:
    ok: bool
    view: Optional[SavedView] = None
    error: Optional[ViewError] = None
    message: str = ""
    restored: Optional[RestoredView] = None


def _not_found(view_id: str) -> ViewResult:
    return ViewResult(ok=False, error=ViewError.NOT_FOUND, message=f"View {view_id} no longer exists.")


def restore_view(view: SavedView, catalog: Sequence[KPI] = KPI_CATALOG) -> RestoredView:
    by_id = {k.id: k for k in catalog}
    kpis = tuple(by_id[kpi_id] for kpi_id in view.kpis if kpi_id in by_id)
    dropped = tuple(kpi_id for kpi_id in view.kpis if kpi_id not in by_id)
    if dropped:
        logger.info("view %s: dropped KPIs no longer in the catalog: %s", view.id, ", ".join(dropped))
    return RestoredView(
        filters=enforce_granularity(view.filters),
        kpis=kpis,
        scope=view.scope,
        scope_label=view.scope_label,
        dropped_kpi_ids=dropped,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_view_id() -> str:
    return f"view-{uuid.uuid4().hex[:12]}"


def _kpi_ids(kpis: Iterable[Union[KPI, str]]) -> Tuple[str, ...]:
    return tuple(k.id if isinstance(k, KPI) else str(k) for k in kpis)


_PATCHABLE = {"name", "description", "filters", "kpis", "scope", "scope_label"}


class SavedViewStore:
    def __init__(
        self,
        repository: Optional[ViewRepository] = None,
        *,
        catalog: Sequence[KPI] = KPI_CATALOG,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_view_id,
    ) -> None:
        self.repository = repository if repository is not None else JsonFileViewRepository()
        self.catalog = catalog
        self._clock = clock
        self._id_factory = id_factory

    def save_view(
        self,
        name: str,
        filters: FilterSelection,
        kpis: Iterable[Union[KPI, str]],
        scope: Union[Scope, str],
        description: Optional[str] = None,
        scope_label: Optional[str] = None,
    ) -> ViewResult:
        name = (name or "").strip()
        if not name:
            logger.warning("refusing to save a view with an empty name")
            return ViewResult(ok=False, error=ViewError.INVALID_NAME, message="View name is required.")

        try:
            scope = Scope.parse(scope)
        except InvalidSelectionError as exc:
            logger.warning("refusing to save view %r: %s", name, exc)
            return ViewResult(ok=False, error=ViewError.INVALID_FILTERS, message=str(exc))

        now = self._clock()
        view_id = self._id_factory()
        while self.repository.get(view_id) is not None:
            view_id = self._id_factory()
        view = SavedView(
            id=view_id,
            name=name,
            description=description or None,
            filters=enforce_granularity(filters),
            kpis=_kpi_ids(kpis),
            scope=scope,
            scope_label=scope_label or None,
            created_at=now,
            updated_at=now,
        )
        self.repository.put(view)
        logger.info("saved view %s (%r) with %d KPIs", view.id, view.name, len(view.kpis))
        return ViewResult(ok=True, view=view, message=f'View "{view.name}" saved successfully!')

    def get_saved_views(self) -> List[SavedView]:
        return self.repository.list()

    def get_view(self, view_id: str) -> Optional[SavedView]:
        return self.repository.get(view_id)

    def search_views(self, query: str) -> List[SavedView]:
        q = (query or "").strip().lower()
        views = self.get_saved_views()
        if not q:
            return views
        return [v for v in views if q in v.name.lower() or q in (v.description or "").lower()]

    def update_view(self, view_id: str, patch: Optional[Mapping[str, Any]] = None, **changes: Any) -> ViewResult:
        changes = {**(patch or {}), **changes}
        illegal = set(changes) - _PATCHABLE
        if illegal:
            raise TypeError(f"cannot patch saved view fields: {sorted(illegal)}")

        current = self.repository.get(view_id)
        if current is None:
            logger.warning("update of unknown view %s", view_id)
            return _not_found(view_id)

        if "name" in changes:
            changes["name"] = (changes["name"] or "").strip()
            if not changes["name"]:
                return ViewResult(ok=False, error=ViewError.INVALID_NAME, message="View name is required.")
        try:
            if "filters" in changes:
                filters = changes["filters"]
                if not isinstance(filters, FilterSelection):
                    filters = normalize_filters(filters)
                changes["filters"] = enforce_granularity(filters)
            if "scope" in changes:
                changes["scope"] = Scope.parse(changes["scope"])
        except InvalidSelectionError as exc:
            logger.warning("rejected update of view %s: %s", view_id, exc)
            return ViewResult(ok=False, error=ViewError.INVALID_FILTERS, message=str(exc))
        if "kpis" in changes:
            changes["kpis"] = _kpi_ids(changes["kpis"])

        updated = replace(current, updated_at=self._clock(), **changes)
        self.repository.put(updated)
        logger.info("updated view %s (%s)", view_id, ", ".join(sorted(changes)) or "touch")
        return ViewResult(ok=True, view=updated)

    def delete_view(self, view_id: str) -> ViewResult:
        if not self.repository.delete(view_id):
            logger.warning("delete of unknown view %s", view_id)
            return _not_found(view_id)
        logger.info("deleted view %s", view_id)
        return ViewResult(ok=True)

    def load_view(self, view: Union[SavedView, str]) -> ViewResult:
        if isinstance(view, str):
            found = self.repository.get(view)
            if found is None:
                logger.warning("load of unknown view %s", view)
                return _not_found(view)
            view = found
        return ViewResult(ok=True, view=view, restored=restore_view(view, self.catalog))
