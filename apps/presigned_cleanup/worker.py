import secrets
from threading import Thread
from wsgiref.simple_server import make_server

from celery import Celery, Task
from celery.exceptions import SoftTimeLimitExceeded
from celery.signals import worker_process_shutdown
from prometheus_client import make_wsgi_app
from structlog import get_logger
from structlog.contextvars import bind_contextvars, clear_contextvars

from shared.config.settings import settings as _settings
from apps.presigned_cleanup.dependencies import Dependencies
from apps.presigned_cleanup.errors import PurgeError
from apps.presigned_cleanup.purge import purge_expired_presigned_tasks

log = get_logger()

CELERY_BROKER_URL = _settings.celery_broker_url or _settings.redis_url
CELERY_RESULT_BACKEND = _settings.celery_result_backend or "redis://redis:6379/1"

celery_app = Celery("presigned_cleanup")
celery_app.conf.broker_url = CELERY_BROKER_URL
celery_app.conf.result_backend = CELERY_RESULT_BACKEND
celery_app.conf.beat_schedule = {
    "purge-expired-presigned-tasks": {
        "task": "purge_expired_presigned_tasks",
        "schedule": float(_settings.purge_interval_seconds),
    },
}


def health_app():
    """WSGI app serving /metrics and /health."""
    metrics_app = make_wsgi_app()

    def app(environ, start_response):
        path = environ.get('PATH_INFO') or '/'
        if path == '/metrics':
            return metrics_app(environ, start_response)
        if path == '/health':
            start_response('200 OK', [('Content-Type', 'text/plain; charset=utf-8')])
            return [b'ok']
        start_response('404 Not Found', [('Content-Type', 'text/plain; charset=utf-8')])
        return [b'not found']

    return app


def start_metrics_and_health_http(port: int) -> Thread:
    """Start a lightweight HTTP server exposing /metrics and /health on given port."""
    app = health_app()

    def _serve():
        with make_server('0.0.0.0', port, app) as httpd:
            log.info("worker_http_server_started", port=httpd.server_port)
            httpd.serve_forever()

    th = Thread(target=_serve, daemon=True)
    th.start()
    return th


class PurgeTask(Task):
    """Holds the job's dependencies for the lifetime of the worker process."""

    _dependencies: Dependencies | None = None

    @property
    def dependencies(self) -> Dependencies:
        if self._dependencies is None:
            self._dependencies = Dependencies.from_settings(_settings)
        return self._dependencies

    def close_dependencies(self) -> None:
        if self._dependencies is not None:
            self._dependencies.close()
            self._dependencies = None


@celery_app.task(
    name="purge_expired_presigned_tasks",
    base=PurgeTask,
    bind=True,
    time_limit=_settings.purge_time_limit_seconds,
    soft_time_limit=max(1, _settings.purge_time_limit_seconds - 60),
)
def purge_presigned_tasks(self):
    bind_contextvars(run_id=secrets.token_hex(8))
    try:
        report = purge_expired_presigned_tasks(
            self.dependencies,
            max_workers=max(1, _settings.purge_tenant_concurrency),
        )
        return report.summary()
    except SoftTimeLimitExceeded:
        log.error("presigned_purge_timed_out", soft_time_limit=self.soft_time_limit)
        raise
    except PurgeError as e:
        log.error("presigned_purge_failed", error=str(e), error_type=type(e).__name__)
        raise
    finally:
        clear_contextvars()


@worker_process_shutdown.connect
def _close_dependencies(**_kwargs):
    purge_presigned_tasks.close_dependencies()


if _settings.metrics_port:
    try:
        start_metrics_and_health_http(int(_settings.metrics_port))
    except Exception:
        log.exception("worker_metrics_server_failed")
