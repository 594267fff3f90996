import threading
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from structlog import get_logger

log = get_logger()


class EngineCache:
    """Engines for the root database and each tenant database.

    Engines (and their connection pools) live as long as the cache; sessions
    handed out by it are short-lived and must be closed by the caller.
    """

    def __init__(self, root_url: str, tenant_url_template: str, **engine_kwargs):
        self.root_url = root_url
        self.tenant_url_template = tenant_url_template
        self._engine_kwargs = engine_kwargs
        self._root_engine: Engine | None = None
        self._tenant_engines: dict[str, Engine] = {}
        self._lock = threading.Lock()

    def _create_engine(self, url: str) -> Engine:
        return create_engine(url, **self._engine_kwargs)

    def root_engine(self) -> Engine:
        with self._lock:
            if self._root_engine is None:
                self._root_engine = self._create_engine(self.root_url)
            return self._root_engine

    def tenant_url(self, tenant) -> str:
        return self.tenant_url_template.format(db_name=tenant.db_name)

    def tenant_engine(self, tenant) -> Engine:
        with self._lock:
            engine = self._tenant_engines.get(tenant.db_name)
            if engine is None:
                engine = self._create_engine(self.tenant_url(tenant))
                self._tenant_engines[tenant.db_name] = engine
                log.debug("tenant_engine_created", db_name=tenant.db_name)
            return engine

    @staticmethod
    def _open(engine: Engine) -> Session:
        db = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
        try:
            # Connect now so unreachable databases fail at acquisition time
            db.connection()
        except Exception:
            db.close()
            raise
        return db

    def open_root_session(self) -> Session:
        return self._open(self.root_engine())

    def open_tenant_session(self, tenant) -> Session:
        return self._open(self.tenant_engine(tenant))

    @contextmanager
    def root_session(self) -> Iterator[Session]:
        db = self.open_root_session()
        try:
            yield db
        finally:
            db.close()

    def dispose(self) -> None:
        with self._lock:
            engines = list(self._tenant_engines.values())
            if self._root_engine is not None:
                engines.append(self._root_engine)
            self._tenant_engines.clear()
            self._root_engine = None
        for engine in engines:
            engine.dispose()
