"""KPI filter and view composition engine (UI-agnostic).

This package contains:
- the KPI catalog and its query surface
- filter option resolution (hierarchical narrowing)
- time range / granularity validation
- saved views (persisted filter + KPI + scope snapshots)
- analysis-state composition (JSON-serializable payloads)
"""
