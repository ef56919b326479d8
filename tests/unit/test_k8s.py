"""Tests for the kubernetes client helpers."""

import json
from unittest.mock import MagicMock

from kubernetes import client

from solr_operator import k8s


def test_deserialize_none():
    """Test that a missing fragment stays missing."""
    assert k8s.deserialize(None, "V1Probe") is None


def test_deserialize_model():
    """Test that camelCase fields land on the client model."""
    probe = k8s.deserialize({"periodSeconds": 20, "httpGet": {"path": "/health", "port": 8983}}, "V1Probe")

    assert isinstance(probe, client.V1Probe)
    assert probe.period_seconds == 20
    assert probe.http_get.path == "/health"


def test_deserialize_list():
    """Test that list types are built item by item."""
    env = k8s.deserialize([{"name": "A", "value": "1"}, {"name": "B", "value": "2"}], "list[V1EnvVar]")

    assert [type(e) for e in env] == [client.V1EnvVar, client.V1EnvVar]
    assert [(e.name, e.value) for e in env] == [("A", "1"), ("B", "2")]


def test_deserialize_with_content_type_signature(monkeypatch):
    """Test that clients taking response text and a content type get exactly that."""
    serializer = MagicMock()
    monkeypatch.setattr(k8s, "_serializer", serializer)
    monkeypatch.setattr(k8s, "_DESERIALIZE_TAKES_CONTENT_TYPE", True)

    result = k8s.deserialize({"periodSeconds": 5}, "V1Probe")

    assert result is serializer.deserialize.return_value
    text, klass, content_type = serializer.deserialize.call_args.args
    assert json.loads(text) == {"periodSeconds": 5}
    assert (klass, content_type) == ("V1Probe", "application/json")


def test_deserialize_with_response_object_signature(monkeypatch):
    """Test that older clients get a response object carrying the JSON text."""
    serializer = MagicMock()
    monkeypatch.setattr(k8s, "_serializer", serializer)
    monkeypatch.setattr(k8s, "_DESERIALIZE_TAKES_CONTENT_TYPE", False)

    k8s.deserialize([{"name": "x"}], "list[V1Volume]")

    response, klass = serializer.deserialize.call_args.args
    assert json.loads(response.data) == {"name": "x"}
    assert klass == "V1Volume"
