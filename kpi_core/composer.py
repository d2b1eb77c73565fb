from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from kpi_core.catalog import KPI, KPI_CATALOG, catalog_frame, filter_kpis, get_kpi
from kpi_core.dimensions import Category, Domain, Scope, Vendor
from kpi_core.filters import FilterSelection, filter_summary
from kpi_core.options import option_states, resolve_for_selection
from kpi_core.timegrain import format_granularity, format_time_range, point_count, validate_time_and_granularity


def _states(all_values: Iterable[Any], available: Iterable[Any], selected: Iterable[Any]) -> List[Dict[str, Any]]:
    return [
        {"value": s.value.value, "selected": s.selected, "enabled": s.enabled}
        for s in option_states(all_values, available, selected)
    ]


def compose_analysis(
    selection: FilterSelection,
    selected_kpi_ids: Iterable[str] = (),
    scope: Union[Scope, str] = Scope.NETWORK,
    scope_label: Optional[str] = None,
    catalog: Optional[Sequence[KPI]] = None,
) -> Dict[str, Any]:
    catalog = KPI_CATALOG if catalog is None else catalog
    options = resolve_for_selection(selection, catalog)
    matching = filter_kpis(catalog, selection.criteria())

    selected: List[KPI] = []
    for kpi_id in dict.fromkeys(selected_kpi_ids):
        kpi = get_kpi(kpi_id, catalog)
        if kpi is not None:
            selected.append(kpi)

    tr = selection.time_range
    check = validate_time_and_granularity(tr.start, tr.end, selection.granularity)
    granularity = check.corrected_granularity or selection.granularity

    return {
        "filters": selection.as_dict(),
        "summary": filter_summary(selection),
        "options": options.as_dict(),
        "option_states": {
            "vendors": _states(Vendor, options.vendors, selection.vendors),
            "domains": _states(Domain, options.domains, selection.domains),
            "categories": _states(Category, options.categories, selection.categories),
        },
        "matching_kpis": catalog_frame(matching).to_dict(orient="records"),
        "selected_kpis": [k.id for k in selected],
        "scope": Scope.parse(scope).value,
        "scope_label": scope_label,
        "time": {
            "label": format_time_range(tr),
            "granularity": granularity.value,
            "granularity_label": format_granularity(granularity),
            "check": check.as_dict(),
            "points": point_count(tr, granularity),
        },
    }
