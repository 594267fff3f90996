from prometheus_client import Counter, Histogram

PURGE_RUNS_TOTAL = Counter(
    "presigned_purge_runs_total",
    "Purge runs by outcome",
    labelnames=["status"],
)
PURGE_RUN_SECONDS = Histogram(
    "presigned_purge_run_seconds",
    "Wall time of a full purge run",
)
TENANTS_PROCESSED_TOTAL = Counter(
    "presigned_purge_tenants_total",
    "Tenants visited by the purge job",
    labelnames=["outcome"],
)
TASKS_DELETED_TOTAL = Counter(
    "presigned_purge_tasks_deleted_total",
    "Expired presigned task rows deleted",
)
FILES_DELETED_TOTAL = Counter(
    "presigned_purge_files_deleted_total",
    "Orphaned upload objects deleted from storage",
)
FAILURES_TOTAL = Counter(
    "presigned_purge_failures_total",
    "Isolated purge failures",
    labelnames=["stage"],
)
