"""
Run one purge pass in-process against the configured databases and storage.

Usage:
  python scripts/smoke_purge.py
"""

import json
import sys

from apps.presigned_cleanup.dependencies import Dependencies
from apps.presigned_cleanup.errors import PurgeError
from apps.presigned_cleanup.purge import purge_expired_presigned_tasks
from shared.config.settings import settings


def main():
    deps = Dependencies.from_settings(settings)
    try:
        report = purge_expired_presigned_tasks(deps, max_workers=settings.purge_tenant_concurrency)
    except PurgeError as e:
        print(f"Purge failed: {e}")
        sys.exit(2)
    finally:
        deps.close()
    print(json.dumps(report.summary(), indent=2))
    if report.tenants_failed:
        print(f"Tenants skipped: {len(report.tenants_failed)} (see logs)")


if __name__ == "__main__":
    main()
