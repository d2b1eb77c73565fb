from contextlib import contextmanager
from datetime import datetime, time
from typing import Iterable, List, Optional

import pandas as pd
import streamlit as st

from kpi_core.catalog import KPI_CATALOG, SCOPE_OPTIONS, catalog_frame, filter_kpis, get_kpi, search_kpis
from kpi_core.composer import compose_analysis
from kpi_core.dimensions import Category, Domain, Granularity, Scope, Technology, Vendor
from kpi_core.filters import FilterSelection, default_selection
from kpi_core.options import is_selectable, resolve_for_selection
from kpi_core.timegrain import (
    TIME_PRESETS,
    TimeRange,
    format_granularity,
    get_preset,
    get_valid_granularities,
    preset_range,
    validate_time_and_granularity,
)
from kpi_core.views import JsonFileViewRepository, SavedViewStore


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;margin-bottom: 8px;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card'><div class='card-title'>{title}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def _key(prefix: str, value) -> str:
    return f"{prefix}_{value.value}"


def sync_widget_state(selection: FilterSelection):
    """Push a selection into the widget keys. Must run before the widgets are created."""
    for prefix, enum_cls, chosen in (
        ("tech", Technology, selection.technologies),
        ("vendor", Vendor, selection.vendors),
        ("domain", Domain, selection.domains),
        ("category", Category, selection.categories),
        ("scope", Scope, selection.scopes),
    ):
        for v in enum_cls:
            st.session_state[_key(prefix, v)] = v in chosen
    st.session_state["time_preset"] = "custom"
    st.session_state["time_from"] = selection.time_range.start.date()
    st.session_state["time_to"] = selection.time_range.end.date()
    st.session_state["granularity"] = selection.granularity.value


def checkbox_group(prefix: str, values: Iterable, available: Optional[Iterable] = None) -> List:
    chosen = []
    available = list(values) if available is None else list(available)
    for v in values:
        key = _key(prefix, v)
        st.session_state.setdefault(key, False)
        selected = st.session_state[key]
        if st.checkbox(v.value, key=key, disabled=not is_selectable(v, available, [v] if selected else [])):
            chosen.append(v)
    return chosen


# ---------- UI setup ----------
st.set_page_config(page_title="Analytics Management", layout="wide")
inject_base_styles()
st.title("Analytics Management")
st.caption("Analyze performance trends, detect degradation, and compare across regions and vendors")

store = st.session_state.get("view_store")
if store is None:
    store = SavedViewStore(JsonFileViewRepository())
    st.session_state["view_store"] = store

selection: FilterSelection = st.session_state.get("analysis_filters") or default_selection()
pending = st.session_state.pop("pending_sync", None)
if pending is not None:
    sync_widget_state(pending)
st.session_state.setdefault("selected_kpis", [])
st.session_state.setdefault("current_scope", Scope.NETWORK.value)

# ----- Sidebar: filters -----
with st.sidebar:
    st.markdown("### Global Filters")
    if st.button("Clear All", disabled=not selection.has_active_filters):
        st.session_state["analysis_filters"] = selection.cleared()
        st.session_state["pending_sync"] = selection.cleared()
        st.rerun()

    options = resolve_for_selection(selection)
    with st.expander("Technology", expanded=True):
        technologies = checkbox_group("tech", Technology)
    with st.expander("Vendor", expanded=True):
        vendors = checkbox_group("vendor", Vendor, options.vendors)
    with st.expander("Domain", expanded=False):
        domains = checkbox_group("domain", Domain, options.domains)
    with st.expander("KPI Category", expanded=False):
        categories = checkbox_group("category", Category, options.categories)
    with st.expander("Analysis Scope", expanded=False):
        scopes = checkbox_group("scope", Scope)

    with st.expander("Time Range", expanded=False):
        preset_ids = [p.id for p in TIME_PRESETS]
        st.session_state.setdefault("time_preset", "30d")
        preset = get_preset(
            st.selectbox(
                "Preset",
                preset_ids,
                key="time_preset",
                format_func=lambda pid: get_preset(pid).label,
            )
        )
        if preset.is_custom:
            st.session_state.setdefault("time_from", selection.time_range.start.date())
            st.session_state.setdefault("time_to", selection.time_range.end.date())
            d_from = st.date_input("From", key="time_from")
            d_to = st.date_input("To", key="time_to")
            if (d_from, d_to) == (selection.time_range.start.date(), selection.time_range.end.date()):
                start, end = selection.time_range.start, selection.time_range.end
            else:
                start, end = datetime.combine(d_from, time.min), datetime.combine(d_to, time.min)
            candidates = get_valid_granularities(start, end) if start < end else tuple(Granularity)
        else:
            # anchored to the hour so reruns within the hour keep the same range
            tr = preset_range(preset, now=datetime.now().replace(minute=0, second=0, microsecond=0))
            start, end = tr.start, tr.end
            candidates = get_valid_granularities(preset)
        choices = [g.value for g in candidates]
        if st.session_state.get("granularity") not in choices:
            st.session_state["granularity"] = preset.default_granularity.value if preset.default_granularity.value in choices else choices[0]
        requested = st.selectbox("Granularity", choices, key="granularity", format_func=format_granularity)

        check = validate_time_and_granularity(start, end, requested)
        if check.warning:
            st.caption(check.warning)
        if not check.valid:
            st.warning(check.reason)

if check.valid or check.corrected_granularity is not None:
    granularity = check.corrected_granularity or Granularity.parse(requested)
    new_selection = FilterSelection(
        technologies=technologies,
        vendors=vendors,
        domains=domains,
        categories=categories,
        scopes=scopes,
        time_range=TimeRange(start, end),
        granularity=granularity,
    )
    if new_selection != selection:
        st.session_state["analysis_filters"] = new_selection
        st.rerun()

# ----- Header actions -----
payload = compose_analysis(
    selection,
    st.session_state["selected_kpis"],
    st.session_state["current_scope"],
    st.session_state.get("current_scope_label"),
)
st.markdown(
    "".join(f"<span class='chip'>{txt}</span>" for txt in payload["summary"].split(" | ")),
    unsafe_allow_html=True,
)

saved_views = store.get_saved_views()
head_cols = st.columns([2, 2, 6])
show_views = head_cols[0].toggle(f"Saved Views ({len(saved_views)})", key="show_saved_views")
if head_cols[1].button("Save View", disabled=not st.session_state["selected_kpis"]):
    st.session_state["show_save_dialog"] = True

if st.session_state.get("show_save_dialog"):
    with card("Save View"):
        view_name = st.text_input("View Name *", placeholder="e.g., 5G Performance Analysis")
        view_desc = st.text_area("Description (Optional)", placeholder="Add notes about this view...")
        c1, c2 = st.columns(2)
        if c1.button("Cancel"):
            st.session_state["show_save_dialog"] = False
            st.rerun()
        if c2.button("Save View", key="confirm_save", disabled=not view_name.strip()):
            result = store.save_view(
                view_name,
                selection,
                st.session_state["selected_kpis"],
                st.session_state["current_scope"],
                description=view_desc,
                scope_label=st.session_state.get("current_scope_label"),
            )
            if result.ok:
                st.session_state["show_save_dialog"] = False
                st.success(result.message)
            else:
                st.warning(result.message)

if show_views:
    with card("Saved Views"):
        if not saved_views:
            st.info('No saved views yet. Create one using the "Save View" button.')
        grid = st.columns(2)
        for idx, view in enumerate(saved_views):
            with grid[idx % 2]:
                st.markdown(f"**{view.name}**")
                if view.description:
                    st.caption(view.description)
                plural = "s" if len(view.kpis) != 1 else ""
                st.caption(f"{len(view.kpis)} KPI{plural} • Scope: {view.scope.value}")
                b1, b2 = st.columns(2)
                if b1.button("Load View", key=f"load_{view.id}"):
                    restored = store.load_view(view).restored
                    st.session_state["analysis_filters"] = restored.filters
                    st.session_state["selected_kpis"] = restored.kpi_ids
                    st.session_state["current_scope"] = restored.scope.value
                    st.session_state["current_scope_label"] = restored.scope_label
                    st.session_state["pending_sync"] = restored.filters
                    st.rerun()
                if b2.button("Delete", key=f"delete_{view.id}"):
                    result = store.delete_view(view.id)
                    if not result.ok:
                        st.warning(result.message)
                    st.rerun()

# ----- Main: KPI selector + scope navigation -----
left, right = st.columns([1, 3])
with left:
    with card("Selected KPIs"):
        term = st.text_input("Search KPIs", "")
        available = search_kpis(filter_kpis(KPI_CATALOG, selection.criteria()), term)
        labels = {k.id: k.name for k in KPI_CATALOG}
        chosen_ids = st.multiselect(
            "KPIs",
            options=list(dict.fromkeys([k.id for k in available] + st.session_state["selected_kpis"])),
            default=st.session_state["selected_kpis"],
            format_func=lambda kid: labels.get(kid, kid),
        )
        if chosen_ids != st.session_state["selected_kpis"]:
            st.session_state["selected_kpis"] = chosen_ids
            st.rerun()

with right:
    with card("Analysis Scope"):
        scope_values = [s.value for s in Scope]
        current_scope = st.radio(
            "Scope",
            scope_values,
            index=scope_values.index(st.session_state["current_scope"]),
            horizontal=True,
        )
        scope_label = st.selectbox("Instance", SCOPE_OPTIONS[Scope.parse(current_scope)])
        if current_scope != st.session_state["current_scope"] or scope_label != st.session_state.get("current_scope_label"):
            st.session_state["current_scope"] = current_scope
            st.session_state["current_scope_label"] = scope_label
            st.rerun()
        st.caption(f"Currently viewing: **{current_scope}** level")

    time_info = payload["time"]
    cols = st.columns(3)
    cols[0].metric("Time Range", time_info["label"])
    cols[1].metric("Granularity", time_info["granularity_label"])
    cols[2].metric("Points per KPI", f"{time_info['points']:,}")

    selected = [get_kpi(kid) for kid in payload["selected_kpis"]]
    if not selected:
        st.info("No KPIs Selected. Select one or more KPIs from the left panel to begin your analysis.")
    else:
        st.dataframe(catalog_frame(selected), use_container_width=True, hide_index=True)

    matching = pd.DataFrame(payload["matching_kpis"])
    with st.expander(f"KPIs matching filters ({len(matching)})"):
        if matching.empty:
            st.info("No KPIs match the selected filters.")
        else:
            st.dataframe(matching, use_container_width=True, hide_index=True)
