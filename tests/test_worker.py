import pytest
from celery.exceptions import SoftTimeLimitExceeded

from apps.presigned_cleanup import worker
from apps.presigned_cleanup.errors import RootConnectError
from apps.presigned_cleanup.purge import PurgeReport

from conftest import NOW


def _call(app, path):
    status_headers = {}

    def start_response(status, headers):
        status_headers['status'] = status
        status_headers['headers'] = headers

    body = b''.join(app({
        'REQUEST_METHOD': 'GET',
        'PATH_INFO': path,
        'QUERY_STRING': '',
        'SERVER_NAME': 'test',
        'SERVER_PORT': '0',
        'wsgi.version': (1, 0),
        'wsgi.url_scheme': 'http',
    }, start_response))
    return status_headers['status'], body


def test_health_app_routes():
    app = worker.health_app()

    status, body = _call(app, '/health')
    assert status.startswith('200')
    assert body == b'ok'

    status, body = _call(app, '/metrics')
    assert status.startswith('200')
    assert b'presigned_purge_runs_total' in body

    status, _ = _call(app, '/nope')
    assert status.startswith('404')


def test_beat_schedule_triggers_purge_task():
    entry = worker.celery_app.conf.beat_schedule["purge-expired-presigned-tasks"]
    assert entry["task"] == "purge_expired_presigned_tasks"
    assert entry["schedule"] == float(worker._settings.purge_interval_seconds)


def test_task_runs_purge_with_process_dependencies(env, monkeypatch):
    acme = env.add_tenant("acme")
    env.add_task(acme, "up/t1.bin")
    seen = {}

    def fake_purge(deps, max_workers=1):
        seen["deps"] = deps
        seen["max_workers"] = max_workers
        return PurgeReport(reference_time=NOW)

    monkeypatch.setattr(worker.purge_presigned_tasks, "_dependencies", env.deps)
    monkeypatch.setattr(worker, "purge_expired_presigned_tasks", fake_purge)

    summary = worker.purge_presigned_tasks()

    assert seen["deps"] is env.deps
    assert seen["max_workers"] >= 1
    assert summary["tenants"] == 0
    assert summary["reference_time"] == NOW.isoformat()


def test_task_fails_on_root_failure(env, monkeypatch):
    def fake_purge(deps, max_workers=1):
        raise RootConnectError("root down")

    monkeypatch.setattr(worker.purge_presigned_tasks, "_dependencies", env.deps)
    monkeypatch.setattr(worker, "purge_expired_presigned_tasks", fake_purge)

    with pytest.raises(RootConnectError):
        worker.purge_presigned_tasks()


def test_task_reraises_soft_time_limit(env, monkeypatch):
    def fake_purge(deps, max_workers=1):
        raise SoftTimeLimitExceeded()

    monkeypatch.setattr(worker.purge_presigned_tasks, "_dependencies", env.deps)
    monkeypatch.setattr(worker, "purge_expired_presigned_tasks", fake_purge)

    with pytest.raises(SoftTimeLimitExceeded):
        worker.purge_presigned_tasks()


def test_dependencies_built_once_per_process(monkeypatch):
    built = []

    class FakeDeps:
        closed = False

        def close(self):
            self.closed = True

    def from_settings(s):
        built.append(s)
        return FakeDeps()

    monkeypatch.setattr(worker.purge_presigned_tasks, "_dependencies", None)
    monkeypatch.setattr(worker.Dependencies, "from_settings", from_settings)

    first = worker.purge_presigned_tasks.dependencies
    second = worker.purge_presigned_tasks.dependencies

    assert first is second
    assert len(built) == 1

    worker.purge_presigned_tasks.close_dependencies()
    assert first.closed is True
    assert worker.purge_presigned_tasks._dependencies is None
