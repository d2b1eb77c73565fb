from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Type

import pandas as pd

from kpi_core.dimensions import Category, Dimension, Direction, Domain, Scope, Technology, Vendor


@dataclass(frozen=True)
class KPI:
    id: str
    name: str
    category: Category
    technology: Technology
    vendor: Vendor
    domain: Domain
    scope: Scope
    unit: str
    direction: Direction
    description: str
    scope_applicability: FrozenSet[Scope] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not self.scope_applicability:
            object.__setattr__(self, "scope_applicability", frozenset((self.scope,) + self.scope.coarser()))

    def applicable_scopes(self) -> Tuple[Scope, ...]:
        return Scope.ordered(self.scope_applicability)


def _kpi(
    kpi_id: str,
    name: str,
    category: str,
    technology: str,
    scope: str,
    vendor: str,
    domain: str,
    unit: str,
    direction: str,
    description: str,
) -> KPI:
    return KPI(
        id=kpi_id,
        name=name,
        category=Category.parse(category),
        technology=Technology.parse(technology),
        vendor=Vendor.parse(vendor),
        domain=Domain.parse(domain),
        scope=Scope.parse(scope),
        unit=unit,
        direction=Direction.parse(direction),
        description=description,
    )


KPI_CATALOG: Tuple[KPI, ...] = (
    # RAN
    _kpi("ran_accessibility_001", "Call Setup Success Rate", "Accessibility", "4G", "Network", "Ericsson", "RAN", "%", "higher-is-better", "Percentage of successful call setup attempts"),
    _kpi("ran_accessibility_002", "CS/PS Availability", "Accessibility", "3G", "Cell", "Huawei", "RAN", "%", "higher-is-better", "Circuit-switched and Packet-switched service availability"),
    _kpi("ran_throughput_001", "Average Cell Throughput", "Throughput", "5G", "Site", "Nokia", "RAN", "Mbps", "higher-is-better", "Average data throughput per cell"),
    _kpi("ran_throughput_002", "Spectral Efficiency", "Throughput", "4G", "Cluster", "Ericsson", "RAN", "bps/Hz", "higher-is-better", "Bits per second per Hertz of spectrum"),
    _kpi("ran_latency_001", "Radio Link Failure Rate", "Latency", "4G", "Cell", "Huawei", "RAN", "%", "lower-is-better", "Percentage of radio link failures"),
    _kpi("ran_latency_002", "Handover Success Rate", "Latency", "5G", "Region", "Nokia", "RAN", "%", "higher-is-better", "Successful handovers / total handover attempts"),
    _kpi("ran_quality_001", "Voice Quality Index (VQI)", "Quality", "4G", "Network", "Ericsson", "RAN", "score", "higher-is-better", "Voice quality measurement (1-5 scale)"),
    _kpi("ran_quality_002", "CSFB Success Rate", "Quality", "4G", "Cell", "Huawei", "RAN", "%", "higher-is-better", "Circuit-switched fallback success rate"),
    # O-RAN
    _kpi("oran_rru_001", "RU RSSI Variation", "Quality", "5G", "Node", "O-RAN", "O-RAN", "dB", "lower-is-better", "RU Received Signal Strength Indicator variation"),
    _kpi("oran_du_001", "DU Processing Latency", "Latency", "5G", "Site", "O-RAN", "O-RAN", "ms", "lower-is-better", "Distributed Unit processing delay"),
    _kpi("oran_ric_001", "RIC Closed-Loop Convergence", "Reliability", "5G", "Cluster", "O-RAN", "O-RAN", "ms", "lower-is-better", "RIC intelligence closed-loop convergence time"),
    # Transport
    _kpi("transport_ip_001", "IP Link Utilization", "Traffic", "4G", "Interface", "ZTE", "Transport", "%", "lower-is-better", "IP backhaul link utilization percentage"),
    _kpi("transport_mpls_001", "MPLS LSP Availability", "Reliability", "5G", "Network", "Nokia", "Transport", "%", "higher-is-better", "MPLS Label Switched Path availability"),
    _kpi("transport_backhaul_001", "Backhaul Latency", "Latency", "4G", "Site", "Ericsson", "Transport", "ms", "lower-is-better", "Backhaul network latency"),
    # Core
    _kpi("core_session_001", "Session Establishment Rate", "Accessibility", "4G", "Network", "Huawei", "Core", "%", "higher-is-better", "Core network session establishment success rate"),
    _kpi("core_auth_001", "Authentication Success Rate", "Accessibility", "5G", "Network", "Ericsson", "Core", "%", "higher-is-better", "User authentication success rate"),
)

SCOPE_OPTIONS: Dict[Scope, Tuple[str, ...]] = {
    Scope.NETWORK: ("Entire Network",),
    Scope.REGION: ("North", "South", "East", "West", "Central"),
    Scope.CLUSTER: ("Cluster A", "Cluster B", "Cluster C", "Cluster D"),
    Scope.SITE: ("Site-01", "Site-02", "Site-03", "Site-04", "Site-05"),
    Scope.NODE: ("Node-A", "Node-B", "Node-C"),
    Scope.CELL: ("Cell-001", "Cell-002", "Cell-003", "Cell-004"),
    Scope.INTERFACE: ("eth0", "eth1", "eth2"),
}

# criteria key -> (KPI attribute, value type)
DIMENSION_ATTRS: Dict[str, Tuple[str, Type[Dimension]]] = {
    "technologies": ("technology", Technology),
    "vendors": ("vendor", Vendor),
    "domains": ("domain", Domain),
    "categories": ("category", Category),
    "scopes": ("scope_applicability", Scope),
}


def _coerce_criteria(criteria: Mapping[str, Iterable[object]]) -> Dict[str, FrozenSet[Dimension]]:
    unknown = set(criteria) - set(DIMENSION_ATTRS)
    if unknown:
        raise KeyError(f"Unknown filter criteria: {sorted(unknown)}")
    out: Dict[str, FrozenSet[Dimension]] = {}
    for key, values in criteria.items():
        members = DIMENSION_ATTRS[key][1].parse_many(values)
        if members:
            out[key] = frozenset(members)
    return out


def _matches(kpi: KPI, criteria: Mapping[str, FrozenSet[Dimension]]) -> bool:
    for key, wanted in criteria.items():
        value = getattr(kpi, DIMENSION_ATTRS[key][0])
        if isinstance(value, frozenset):
            if not value & wanted:
                return False
        elif value not in wanted:
            return False
    return True


def filter_kpis(kpis: Iterable[KPI], criteria: Optional[Mapping[str, Iterable[object]]] = None) -> List[KPI]:
    """Intersection filter over the catalog.

    A KPI survives when, for every non-empty criterion, its attribute is in the
    criterion set (scopes match on any overlap with the KPI's applicability).
    Empty or missing criteria impose no constraint.
    """
    wanted = _coerce_criteria(criteria or {})
    return [k for k in kpis if _matches(k, wanted)]


def project(kpis: Iterable[KPI], attr: str) -> Tuple[Dimension, ...]:
    values = [getattr(k, attr) for k in kpis]
    if not values:
        return ()
    if isinstance(values[0], frozenset):
        flat = set().union(*values)
        return type(next(iter(flat))).ordered(flat) if flat else ()
    return type(values[0]).ordered(values)


def get_kpi(kpi_id: str, catalog: Sequence[KPI] = KPI_CATALOG) -> Optional[KPI]:
    for kpi in catalog:
        if kpi.id == kpi_id:
            return kpi
    return None


def search_kpis(kpis: Iterable[KPI], term: str) -> List[KPI]:
    q = (term or "").strip().lower()
    if not q:
        return list(kpis)
    return [
        k
        for k in kpis
        if q in k.name.lower() or q in k.category.value.lower() or q in k.description.lower()
    ]


def catalog_frame(kpis: Iterable[KPI]) -> pd.DataFrame:
    rows = [
        {
            "id": k.id,
            "name": k.name,
            "category": k.category.value,
            "technology": k.technology.value,
            "vendor": k.vendor.value,
            "domain": k.domain.value,
            "scope": k.scope.value,
            "applicable_scopes": ", ".join(s.value for s in k.applicable_scopes()),
            "unit": k.unit,
            "direction": k.direction.value,
            "description": k.description,
        }
        for k in kpis
    ]
    columns = ["id", "name", "category", "technology", "vendor", "domain", "scope", "applicable_scopes", "unit", "direction", "description"]
    return pd.DataFrame(rows, columns=columns)
