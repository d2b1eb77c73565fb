"""Filter option resolution with hierarchical narrowing.

Precedence: technologies narrow vendors, domains and categories; vendors also
narrow domains. Domains and categories narrow nothing downstream. An empty
upstream selection means "no constraint".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from kpi_core.catalog import KPI, KPI_CATALOG, filter_kpis, project
from kpi_core.dimensions import Category, Dimension, Domain, Technology, Vendor


@dataclass(frozen=True)
class AvailableOptions:
    vendors: Tuple[Vendor, ...] = ()
    domains: Tuple[Domain, ...] = ()
    categories: Tuple[Category, ...] = ()

    def for_dimension(self, name: str) -> Tuple[Dimension, ...]:
        return getattr(self, name)

    def as_dict(self) -> Dict[str, List[str]]:
        return {
            "vendors": [v.value for v in self.vendors],
            "domains": [d.value for d in self.domains],
            "categories": [c.value for c in self.categories],
        }


@dataclass(frozen=True)
class OptionState:
    value: Dimension
    selected: bool
    enabled: bool


def resolve_available_options(
    technologies: Iterable[object] = (),
    vendors: Iterable[object] = (),
    domains: Iterable[object] = (),
    *,
    catalog: Optional[Sequence[KPI]] = None,
) -> AvailableOptions:
    catalog = KPI_CATALOG if catalog is None else catalog
    techs = Technology.parse_many(technologies)
    vends = Vendor.parse_many(vendors)
    # domains narrow nothing; parsed so bad values are still rejected
    Domain.parse_many(domains)

    by_tech = filter_kpis(catalog, {"technologies": techs})
    by_tech_vendor = filter_kpis(by_tech, {"vendors": vends})
    return AvailableOptions(
        vendors=project(by_tech, "vendor"),
        domains=project(by_tech_vendor, "domain"),
        categories=project(by_tech, "category"),
    )


def resolve_for_selection(selection: Any, catalog: Optional[Sequence[KPI]] = None) -> AvailableOptions:
    """Resolve from a FilterSelection; categories and scopes are never inputs."""
    return resolve_available_options(**selection.upstream(), catalog=catalog)


def is_selectable(value: Dimension, available: Iterable[Dimension], selected: Iterable[Dimension]) -> bool:
    # a selected value stays togglable-off even once it drops out of the options
    return value in set(available) or value in set(selected)


def option_states(
    all_values: Iterable[Dimension],
    available: Iterable[Dimension],
    selected: Iterable[Dimension],
) -> List[OptionState]:
    available = set(available)
    selected = set(selected)
    return [
        OptionState(value=v, selected=v in selected, enabled=is_selectable(v, available, selected))
        for v in all_values
    ]
