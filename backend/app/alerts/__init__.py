"""
alerts — Hazard alert lifecycle and geospatial matching.

Sub-modules:
    models          — ORM record, enums and caller identity
    schemas         — Mutation payload validation
    store           — Transactional persistence, filters and sorting
    validity        — "In effect at instant t" predicate
    geo_fence       — Bounding-box pre-filter plus exact haversine check
    query           — Read-side parameter coercion and list planning
    gatekeeper      — Role-gated create / update / delete
    aggregator      — Catalog statistics
    alert_service   — Facade the transport layer calls
"""
