"""
Prometheus collectors for the SQL output stage.
Registered in the global REGISTRY on import.
"""

from prometheus_client import Counter, Histogram

RECORDS_TOTAL = Counter(
    "sql_output_records_total",
    "Records accounted for by the SQL output stage",
    ["table", "outcome"],
)

BULK_IMPORT_SECONDS = Histogram(
    "sql_output_bulk_import_seconds",
    "Bulk import latency in seconds",
    ["table"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10],
)

FALLBACKS_TOTAL = Counter(
    "sql_output_fallbacks_total",
    "Bulk imports that degraded to one-by-one import",
    ["table"],
)

RETRIES_TOTAL = Counter(
    "sql_output_retries_total",
    "Per-record import retries after transient failures",
    ["table"],
)
