from dataclasses import dataclass

from shared.db.session import EngineCache
from shared.storage.s3 import StorageFactory


@dataclass
class Dependencies:
    """Expensive, process-wide collaborators of the purge job.

    Built once per worker process and passed explicitly to
    `purge_expired_presigned_tasks`.
    """

    engines: EngineCache
    storage: StorageFactory

    @classmethod
    def from_settings(cls, s) -> "Dependencies":
        engine_kwargs = {"pool_pre_ping": True}
        if s.database_url.startswith("postgresql"):
            engine_kwargs["pool_size"] = s.db_pool_size
            engine_kwargs["connect_args"] = {"connect_timeout": s.db_connect_timeout}
        engines = EngineCache(s.database_url, s.tenant_database_url_template, **engine_kwargs)
        return cls(engines=engines, storage=StorageFactory.from_settings(s))

    def close(self) -> None:
        self.engines.dispose()
