from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from kpi_core.catalog import KPI_CATALOG, get_kpi
from kpi_core.dimensions import Granularity, Scope, Vendor
from kpi_core.filters import FilterSelection
from kpi_core.timegrain import TimeRange
from kpi_core.views import (
    InMemoryViewRepository,
    JsonFileViewRepository,
    SavedViewStore,
    ViewError,
    restore_view,
)

SCENARIO_KPIS = ["ran_throughput_001", "ran_latency_002", "transport_mpls_001"]


def test_save_returns_the_view(store, five_g_filters):
    result = store.save_view("  5G Performance ", five_g_filters, SCENARIO_KPIS, Scope.REGION, scope_label="North")
    assert result.ok
    assert result.message == 'View "5G Performance" saved successfully!'
    view = result.view
    assert view.id == "view-1"
    assert view.name == "5G Performance"
    assert view.kpis == tuple(SCENARIO_KPIS)
    assert view.scope == Scope.REGION
    assert view.created_at == view.updated_at


def test_views_are_listed_in_insertion_order(store, five_g_filters):
    for name in ("b", "a", "c"):
        store.save_view(name, five_g_filters, [], "Network")
    assert [v.name for v in store.get_saved_views()] == ["b", "a", "c"]


@pytest.mark.parametrize("name", ["", "   ", None])
def test_empty_name_is_refused(store, five_g_filters, name):
    result = store.save_view(name, five_g_filters, SCENARIO_KPIS, Scope.NETWORK)
    assert not result.ok
    assert result.error == ViewError.INVALID_NAME
    assert store.get_saved_views() == []


def test_save_rejects_unknown_scope(store, five_g_filters):
    result = store.save_view("x", five_g_filters, [], "Galaxy")
    assert not result.ok
    assert result.error == ViewError.INVALID_FILTERS
    assert "Galaxy" in result.message
    assert store.get_saved_views() == []


def test_round_trip_through_a_fresh_repository(store, views_path, five_g_filters):
    kpis = ["ran_throughput_001", "ran_latency_002"]
    saved = store.save_view("Nokia 5G", five_g_filters, kpis, Scope.SITE).view

    reopened = SavedViewStore(JsonFileViewRepository(views_path))
    assert reopened.get_saved_views() == [saved]
    restored = reopened.load_view(saved.id).restored
    assert restored.filters == five_g_filters
    assert restored.kpi_ids == kpis
    assert restored.dropped_kpi_ids == ()


def test_loading_after_a_kpi_leaves_the_catalog(store, views_path, five_g_filters):
    saved = store.save_view("5G Performance", five_g_filters, SCENARIO_KPIS, Scope.REGION, scope_label="North").view

    trimmed = [k for k in KPI_CATALOG if k.id != "transport_mpls_001"]
    evolved = SavedViewStore(JsonFileViewRepository(views_path), catalog=trimmed)
    restored = evolved.load_view(saved.id).restored
    assert restored.kpi_ids == ["ran_throughput_001", "ran_latency_002"]
    assert restored.dropped_kpi_ids == ("transport_mpls_001",)
    assert restored.filters == five_g_filters
    assert restored.scope == Scope.REGION
    assert restored.scope_label == "North"


def test_listing_twice_gives_the_same_result(store, five_g_filters):
    store.save_view("one", five_g_filters, SCENARIO_KPIS[:1], Scope.NETWORK)
    store.save_view("two", five_g_filters, SCENARIO_KPIS[1:], Scope.CELL)
    assert store.get_saved_views() == store.get_saved_views()


def test_saving_corrects_granularity(store):
    filters = FilterSelection(time_range=TimeRange(datetime(2024, 1, 1), datetime(2024, 1, 8)), granularity="1M")
    view = store.save_view("weekly", filters, [], Scope.NETWORK).view
    assert view.filters.granularity == Granularity.WEEK
    assert store.get_view(view.id).filters.granularity == Granularity.WEEK


def test_update_view(store, five_g_filters):
    view = store.save_view("draft", five_g_filters, SCENARIO_KPIS, Scope.REGION).view
    result = store.update_view(view.id, name="final", kpis=[get_kpi("ran_latency_002")])
    assert result.ok
    assert result.view.name == "final"
    assert result.view.kpis == ("ran_latency_002",)
    assert result.view.created_at == view.created_at
    assert result.view.updated_at > view.updated_at
    assert store.get_view(view.id) == result.view


def test_update_accepts_raw_filters(store, five_g_filters):
    view = store.save_view("draft", five_g_filters, [], Scope.NETWORK).view
    patch = {"filters": {"vendors": ["Ericsson"], "timeRange": {"from": "2024-01-01", "to": "2024-01-02"}, "granularity": "1W"}}
    updated = store.update_view(view.id, patch).view
    assert updated.filters.vendors == (Vendor.ERICSSON,)
    assert updated.filters.granularity == Granularity.DAY


def test_update_rejects_blank_name_and_unknown_fields(store, five_g_filters):
    view = store.save_view("draft", five_g_filters, [], Scope.NETWORK).view
    result = store.update_view(view.id, name=" ")
    assert result.error == ViewError.INVALID_NAME
    with pytest.raises(TypeError):
        store.update_view(view.id, id="other")
    assert store.get_view(view.id).name == "draft"


@pytest.mark.parametrize(
    "patch",
    [
        {"filters": {"timeRange": {"from": "2024-02-01", "to": "2024-01-01"}}},
        {"filters": {"vendors": ["Cisco"]}},
        {"scope": "Galaxy"},
    ],
)
def test_update_with_invalid_selection_returns_a_result(store, five_g_filters, patch):
    view = store.save_view("draft", five_g_filters, [], Scope.NETWORK).view
    result = store.update_view(view.id, patch)
    assert not result.ok
    assert result.error == ViewError.INVALID_FILTERS
    assert result.message
    assert store.get_view(view.id) == view


def test_missing_view_operations(store):
    assert store.update_view("view-404", name="x").error == ViewError.NOT_FOUND
    assert store.delete_view("view-404").error == ViewError.NOT_FOUND
    assert store.load_view("view-404").error == ViewError.NOT_FOUND
    assert store.get_view("view-404") is None


def test_delete_view(store, five_g_filters):
    keep = store.save_view("keep", five_g_filters, [], Scope.NETWORK).view
    drop = store.save_view("drop", five_g_filters, [], Scope.NETWORK).view
    assert store.delete_view(drop.id).ok
    assert store.get_saved_views() == [keep]


def test_search_views(store, five_g_filters):
    store.save_view("5G Performance", five_g_filters, [], Scope.NETWORK)
    store.save_view("Core health", five_g_filters, [], Scope.NETWORK, description="weekly 5g review")
    store.save_view("Transport", five_g_filters, [], Scope.NETWORK)
    assert [v.name for v in store.search_views("5g")] == ["5G Performance", "Core health"]
    assert len(store.search_views("")) == 3


def test_file_layout(store, views_path, five_g_filters):
    store.save_view("5G Performance", five_g_filters, SCENARIO_KPIS, Scope.REGION, scope_label="North")
    data = json.loads(views_path.read_text(encoding="utf-8"))
    assert len(data) == 1
    entry = data[0]
    assert entry["id"] == "view-1"
    assert entry["scope"] == "Region"
    assert entry["scopeLabel"] == "North"
    assert entry["filters"]["timeRange"] == {"from": "2024-01-01T00:00:00", "to": "2024-01-31T00:00:00"}
    assert entry["filters"]["technologies"] == ["5G"]
    assert {"createdAt", "updatedAt"} <= set(entry)
    assert "description" not in entry


def test_invalid_entries_are_skipped(store, views_path, five_g_filters, caplog):
    store.save_view("good", five_g_filters, [], Scope.NETWORK)
    data = json.loads(views_path.read_text(encoding="utf-8"))
    data.append({"id": "bad-1", "name": "broken", "scope": "Galaxy"})
    data.append("not even an object")
    views_path.write_text(json.dumps(data), encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="kpi_core.views"):
        views = store.get_saved_views()
    assert [v.name for v in views] == ["good"]
    assert "bad-1" in caplog.text

    # entries that failed validation survive later writes untouched
    store.save_view("second", five_g_filters, [], Scope.NETWORK)
    store.delete_view("view-1")
    after = json.loads(views_path.read_text(encoding="utf-8"))
    assert after[:2] == [{"id": "bad-1", "name": "broken", "scope": "Galaxy"}, "not even an object"]
    assert after[2]["name"] == "second"
    assert [v.name for v in store.get_saved_views()] == ["second"]


def test_unreadable_file_is_set_aside_before_saving(store, views_path, five_g_filters):
    store.save_view("a", five_g_filters, [], Scope.NETWORK)
    store.save_view("b", five_g_filters, [], Scope.NETWORK)
    broken = views_path.read_text(encoding="utf-8").rstrip().rstrip("]") + ",]"
    views_path.write_text(broken, encoding="utf-8")

    assert store.save_view("c", five_g_filters, [], Scope.NETWORK).ok

    assert [v.name for v in store.get_saved_views()] == ["c"]
    aside = list(views_path.parent.glob("views.json.corrupt-*"))
    assert len(aside) == 1
    assert aside[0].read_text(encoding="utf-8") == broken


def test_delete_leaves_an_unreadable_file_alone(store, views_path):
    views_path.write_text(json.dumps({"views": []}), encoding="utf-8")
    assert store.delete_view("view-1").error == ViewError.NOT_FOUND
    assert json.loads(views_path.read_text(encoding="utf-8")) == {"views": []}
    assert not list(views_path.parent.glob("views.json.corrupt-*"))


def test_unreadable_file_reads_as_empty(store, views_path):
    views_path.write_text("{not json", encoding="utf-8")
    assert store.get_saved_views() == []
    views_path.write_text(json.dumps({"views": []}), encoding="utf-8")
    assert store.get_saved_views() == []


def test_missing_file_reads_as_empty(tmp_path):
    assert JsonFileViewRepository(tmp_path / "nested" / "views.json").list() == []


def test_in_memory_repository(clock, five_g_filters):
    store = SavedViewStore(InMemoryViewRepository(), clock=clock)
    view = store.save_view("mem", five_g_filters, SCENARIO_KPIS, Scope.CLUSTER).view
    assert view.id.startswith("view-")
    assert store.get_saved_views() == [view]
    assert store.delete_view(view.id).ok
    assert store.get_saved_views() == []


def test_restore_view_corrects_stale_granularity(store, five_g_filters):
    view = store.save_view("v", five_g_filters, SCENARIO_KPIS, Scope.NETWORK).view
    # hourly over ten days, as written by an older build
    legacy = FilterSelection(
        time_range=TimeRange(datetime(2024, 1, 1), datetime(2024, 1, 1) + timedelta(days=10)),
        granularity=Granularity.HOUR,
    )
    restored = restore_view(replace(view, filters=legacy))
    assert restored.filters.granularity == Granularity.DAY
    assert restored.filters.time_range == legacy.time_range
