class PurgeError(Exception):
    """Base for errors raised by the presigned purge job."""


class RootConnectError(PurgeError):
    """The root database could not be reached. Fails the whole run."""


class TenantQueryError(PurgeError):
    """Listing tenants from the root database failed. Fails the whole run."""


class TenantConnectError(PurgeError):
    """A tenant's database session or storage handle could not be established."""

    def __init__(self, tenant_id, message: str):
        super().__init__(f"tenant {tenant_id}: {message}")
        self.tenant_id = tenant_id


class TaskQueryError(PurgeError):
    """Querying a tenant's expired presigned tasks failed."""
