"""Pytest configuration and shared fixtures."""

import base64
import json

import pytest
from hypothesis import Verbosity, settings
from kubernetes import client

from solr_operator.k8s import serialize
from solr_operator.models import SolrCloud, SolrCloudStatus

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal, deadline=None)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose, deadline=None)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose, deadline=None)

# Load the default profile
settings.load_profile("default")


ZK_CONNECTION_INFO = {
    "internalConnectionString": "zk-0.zk-headless:2181,zk-1.zk-headless:2181",
    "chroot": "/solr",
}


def build_cloud(spec=None, name="example", namespace="solr", labels=None, uid=""):
    """Build a SolrCloud with an explicit ZooKeeper unless the spec sets one."""
    spec = dict(spec or {})
    spec.setdefault("zookeeperRef", {"connectionInfo": dict(ZK_CONNECTION_INFO)})
    return SolrCloud.from_resource(name, namespace, spec, {"labels": labels or {}, "uid": uid})


def to_json(obj):
    """Stable JSON text for a model, used to compare generated objects."""
    return json.dumps(serialize(obj), sort_keys=True, separators=(",", ":"))


def basic_auth_secret(name, username="admin", password="s3cret", secret_type="kubernetes.io/basic-auth"):
    """A secret shaped like one read back from the API server."""
    return client.V1Secret(
        metadata=client.V1ObjectMeta(name=name, namespace="solr"),
        type=secret_type,
        data={
            "username": base64.b64encode(username.encode()).decode(),
            "password": base64.b64encode(password.encode()).decode(),
        },
    )


@pytest.fixture
def make_cloud():
    """Factory for SolrCloud models."""
    return build_cloud


@pytest.fixture
def cloud():
    """A SolrCloud with every option left at its default."""
    return build_cloud()


@pytest.fixture
def zk_status():
    """Status reporting a ZooKeeper ensemble with a chroot."""
    return SolrCloudStatus.model_validate({"zookeeperConnectionInfo": ZK_CONNECTION_INFO})


@pytest.fixture
def tls_spec():
    """TLS options backed by a PKCS12 keystore secret."""
    return {
        "pkcs12Secret": {"name": "solr-tls", "key": "keystore.p12"},
        "keyStorePasswordSecret": {"name": "solr-tls-pass", "key": "password"},
    }
