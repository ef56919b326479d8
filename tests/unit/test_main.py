"""Tests for the kopf handlers."""

from types import SimpleNamespace

import kopf
import pytest

from solr_operator import main
from solr_operator.exceptions import InvalidSecretError, ZookeeperNotReadyError

HANDLER_KWARGS = {
    "spec": {},
    "status": {},
    "name": "example",
    "namespace": "solr",
    "uid": "1234",
    "meta": {},
}


def call_handler(handler):
    patch = SimpleNamespace(status={})
    handler(patch=patch, **HANDLER_KWARGS)
    return patch


def failing(error):
    def reconcile(*args, **kwargs):
        raise error

    return reconcile


def test_status_is_patched(monkeypatch):
    """Test that the reconcile result is written to the status."""
    monkeypatch.setattr(main, "reconcile_solrcloud", lambda *a, **kw: {"message": "ok", "replicas": 3})

    patch = call_handler(main.solrcloud_handler)

    assert patch.status == {"message": "ok", "replicas": 3}


def test_invalid_configuration_is_permanent(monkeypatch):
    """Test that configuration errors are not retried."""
    monkeypatch.setattr(main, "reconcile_solrcloud", failing(InvalidSecretError("bad secret")))

    with pytest.raises(kopf.PermanentError):
        call_handler(main.solrcloud_handler)


def test_zookeeper_not_ready_is_retried(monkeypatch):
    """Test that a missing ZooKeeper address is retried soon."""
    monkeypatch.setattr(main, "reconcile_solrcloud", failing(ZookeeperNotReadyError("no zk")))

    with pytest.raises(kopf.TemporaryError) as exc_info:
        call_handler(main.solrcloud_handler)

    assert exc_info.value.delay == 10


def test_unexpected_errors_are_retried(monkeypatch):
    """Test that other errors are retried later."""
    monkeypatch.setattr(main, "reconcile_solrcloud", failing(RuntimeError("boom")))

    with pytest.raises(kopf.TemporaryError) as exc_info:
        call_handler(main.solrcloud_handler)

    assert exc_info.value.delay == 30


def test_timer_swallows_errors(monkeypatch):
    """Test that the timer logs failures and waits for the next tick."""
    monkeypatch.setattr(main, "reconcile_solrcloud", failing(RuntimeError("boom")))

    patch = call_handler(main.solrcloud_timer)

    assert patch.status == {}
