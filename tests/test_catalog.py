from __future__ import annotations

import pytest

from kpi_core.catalog import KPI_CATALOG, SCOPE_OPTIONS, catalog_frame, filter_kpis, get_kpi, project, search_kpis
from kpi_core.dimensions import Category, Scope, Technology, Vendor
from kpi_core.errors import InvalidSelectionError


def test_catalog_ids_are_unique():
    ids = [k.id for k in KPI_CATALOG]
    assert len(ids) == len(set(ids))


def test_empty_criteria_keeps_everything():
    assert filter_kpis(KPI_CATALOG, {}) == list(KPI_CATALOG)
    assert filter_kpis(KPI_CATALOG) == list(KPI_CATALOG)
    assert filter_kpis(KPI_CATALOG, {"technologies": [], "vendors": []}) == list(KPI_CATALOG)


def test_filter_is_an_intersection():
    out = filter_kpis(KPI_CATALOG, {"technologies": [Technology.G5], "vendors": [Vendor.NOKIA]})
    assert [k.id for k in out] == ["ran_throughput_001", "ran_latency_002", "transport_mpls_001"]
    assert all(k.technology == Technology.G5 and k.vendor == Vendor.NOKIA for k in out)


def test_filter_accepts_raw_strings():
    typed = filter_kpis(KPI_CATALOG, {"categories": [Category.LATENCY]})
    raw = filter_kpis(KPI_CATALOG, {"categories": ["Latency"]})
    assert typed == raw
    assert len(raw) == 4


def test_filter_rejects_unknown_values_and_keys():
    with pytest.raises(InvalidSelectionError):
        filter_kpis(KPI_CATALOG, {"technologies": ["6G"]})
    with pytest.raises(KeyError):
        filter_kpis(KPI_CATALOG, {"regions": ["North"]})


def test_scope_filter_uses_applicability():
    out = {k.id for k in filter_kpis(KPI_CATALOG, {"scopes": [Scope.REGION]})}
    # region-level and finer KPIs roll up to region; network-only ones do not
    assert "ran_latency_002" in out
    assert "ran_accessibility_002" in out
    assert "ran_accessibility_001" not in out


def test_cell_kpi_rolls_up_to_every_coarser_level():
    kpi = get_kpi("ran_accessibility_002")
    assert kpi.applicable_scopes() == (
        Scope.NETWORK,
        Scope.REGION,
        Scope.CLUSTER,
        Scope.SITE,
        Scope.NODE,
        Scope.CELL,
    )


@pytest.mark.parametrize(
    "criteria",
    [
        {},
        {"technologies": ["5G"]},
        {"technologies": ["4G"], "domains": ["Transport"]},
        {"vendors": ["Huawei"], "categories": ["Quality", "Latency"]},
        {"scopes": ["Site"], "technologies": ["5G", "4G"]},
        {"technologies": ["2G"]},
    ],
)
def test_filtering_is_idempotent(criteria):
    once = filter_kpis(KPI_CATALOG, criteria)
    assert filter_kpis(once, criteria) == once


def test_project_keeps_display_order():
    # enum order, not catalog order
    assert project(KPI_CATALOG, "vendor") == (Vendor.HUAWEI, Vendor.ERICSSON, Vendor.NOKIA, Vendor.ZTE, Vendor.ORAN)
    assert project([], "vendor") == ()


def test_get_kpi_unknown_is_none():
    assert get_kpi("nope") is None


def test_search_matches_name_category_and_description():
    assert [k.id for k in search_kpis(KPI_CATALOG, "handover")] == ["ran_latency_002"]
    assert {k.id for k in search_kpis(KPI_CATALOG, "TRAFFIC")} == {"transport_ip_001"}
    assert {k.id for k in search_kpis(KPI_CATALOG, "backhaul")} == {"transport_ip_001", "transport_backhaul_001"}
    assert search_kpis(KPI_CATALOG, "  ") == list(KPI_CATALOG)


def test_catalog_frame_has_one_row_per_kpi():
    df = catalog_frame(KPI_CATALOG)
    assert len(df) == len(KPI_CATALOG)
    assert list(df["id"]) == [k.id for k in KPI_CATALOG]
    assert df.loc[df["id"] == "oran_du_001", "unit"].item() == "ms"
    assert catalog_frame([]).empty


def test_every_scope_has_labels():
    assert set(SCOPE_OPTIONS) == set(Scope)
    assert "North" in SCOPE_OPTIONS[Scope.REGION]
