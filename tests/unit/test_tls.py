"""Tests for TLS and secured probes."""

import pytest

from conftest import to_json
from solr_operator.backup import resolve_backup_repositories
from solr_operator.exceptions import ConfigurationError
from solr_operator.models import ExistingState
from solr_operator.security import SecurityResult
from solr_operator.templates import build_stateful_set
from solr_operator.tls import (
    COMMAND_PROBE_TIMEOUT,
    secure_probe_command,
    solr_container,
    uses_command_probes,
    with_tls,
)


def base_stateful_set(cloud, zk_status):
    return build_stateful_set(
        cloud, zk_status, ExistingState(), resolve_backup_repositories(cloud), SecurityResult()
    )


def env_names(container):
    return [e.name for e in container.env]


def env_dict(container):
    return {e.name: e for e in container.env}


def test_no_tls_no_change(cloud, zk_status):
    """Test that plain clouds are returned as built."""
    stateful_set = base_stateful_set(cloud, zk_status)

    assert to_json(with_tls(stateful_set, cloud)) == to_json(stateful_set)


def test_input_is_not_mutated(make_cloud, zk_status, tls_spec):
    """Test that TLS is applied to a copy."""
    cloud = make_cloud({"solrTLS": {**tls_spec, "clientAuth": "Need"}})
    stateful_set = base_stateful_set(cloud, zk_status)
    before = to_json(stateful_set)

    secured = with_tls(stateful_set, cloud)

    assert to_json(stateful_set) == before
    assert secured is not stateful_set


def test_keystore_secret_tls(make_cloud, zk_status, tls_spec):
    """Test keystore volume, env vars and HTTPS probes."""
    cloud = make_cloud({"solrTLS": tls_spec})

    stateful_set = with_tls(base_stateful_set(cloud, zk_status), cloud)
    pod_spec = stateful_set.spec.template.spec
    container = solr_container(pod_spec)
    env = env_dict(container)

    keystore = next(v for v in pod_spec.volumes if v.name == "keystore")
    assert keystore.secret.secret_name == "solr-tls"
    assert [i.path for i in keystore.secret.items] == ["keystore.p12"]
    assert any(m.mount_path == "/var/solr/tls" and m.read_only for m in container.volume_mounts)
    assert env["SOLR_SSL_ENABLED"].value == "true"
    assert env["SOLR_SSL_KEY_STORE"].value == "/var/solr/tls/keystore.p12"
    assert env["SOLR_SSL_TRUST_STORE"].value == "/var/solr/tls/keystore.p12"
    assert env["SOLR_SSL_KEY_STORE_PASSWORD"].value_from.secret_key_ref.name == "solr-tls-pass"
    assert env["SOLR_SSL_NEED_CLIENT_AUTH"].value == "false"
    assert env_names(container)[-1] == "SOLR_OPTS"
    assert container.liveness_probe.http_get.scheme == "HTTPS"
    assert container.readiness_probe.http_get.scheme == "HTTPS"


def test_truststore_in_separate_secret(make_cloud, zk_status, tls_spec):
    """Test that a separate truststore secret gets its own volume."""
    cloud = make_cloud(
        {"solrTLS": {**tls_spec, "trustStoreSecret": {"name": "ca", "key": "truststore.p12"}}}
    )

    pod_spec = with_tls(base_stateful_set(cloud, zk_status), cloud).spec.template.spec
    env = env_dict(solr_container(pod_spec))

    assert "truststore" in [v.name for v in pod_spec.volumes]
    assert env["SOLR_SSL_TRUST_STORE"].value == "/var/solr/tls/truststore/truststore.p12"


def test_truststore_in_keystore_secret(make_cloud, zk_status, tls_spec):
    """Test that a truststore in the keystore secret is an extra item."""
    cloud = make_cloud(
        {"solrTLS": {**tls_spec, "trustStoreSecret": {"name": "solr-tls", "key": "ca.p12"}}}
    )

    pod_spec = with_tls(base_stateful_set(cloud, zk_status), cloud).spec.template.spec
    keystore = next(v for v in pod_spec.volumes if v.name == "keystore")

    assert [i.path for i in keystore.secret.items] == ["keystore.p12", "truststore.p12"]
    assert "truststore" not in [v.name for v in pod_spec.volumes]


def test_keystore_requires_password(make_cloud, zk_status):
    """Test that a keystore without a password secret is rejected."""
    cloud = make_cloud({"solrTLS": {"pkcs12Secret": {"name": "solr-tls", "key": "keystore.p12"}}})

    with pytest.raises(ConfigurationError, match="keyStorePasswordSecret"):
        with_tls(base_stateful_set(cloud, zk_status), cloud)


def test_tls_requires_certificate_source(make_cloud, zk_status):
    """Test that TLS without keystore or mounted dir is rejected."""
    cloud = make_cloud({"solrTLS": {"clientAuth": "Want"}})

    with pytest.raises(ConfigurationError):
        with_tls(base_stateful_set(cloud, zk_status), cloud)


def test_mounted_tls_dir(make_cloud, zk_status):
    """Test that mounted TLS files are read at startup."""
    cloud = make_cloud({"solrTLS": {"mountedTLSDir": {"path": "/mnt/tls"}}})

    container = solr_container(with_tls(base_stateful_set(cloud, zk_status), cloud).spec.template.spec)
    env = env_dict(container)

    assert env["SOLR_SSL_KEY_STORE"].value == "/mnt/tls/keystore.p12"
    assert "SOLR_SSL_KEY_STORE_PASSWORD" not in env
    assert container.command[:2] == ["sh", "-c"]
    assert 'SOLR_SSL_KEY_STORE_PASSWORD="$(cat /mnt/tls/keystore-password)"' in container.command[2]
    assert container.command[2].endswith("exec solr-foreground")


def test_restart_on_tls_secret_update(make_cloud, zk_status, tls_spec):
    """Test the certificate digest annotation."""
    cloud = make_cloud({"solrTLS": {**tls_spec, "restartOnTLSSecretUpdate": True}})

    stateful_set = with_tls(base_stateful_set(cloud, zk_status), cloud, tls_cert_md5="abc123")

    assert stateful_set.spec.template.metadata.annotations["solr.apache.org/tlsCertMd5"] == "abc123"


def test_uses_command_probes(make_cloud, tls_spec):
    """Test when the kubelet cannot probe over plain HTTP(S)."""
    assert not uses_command_probes(make_cloud())
    assert not uses_command_probes(make_cloud({"solrTLS": tls_spec}))
    assert uses_command_probes(make_cloud({"solrTLS": {**tls_spec, "clientAuth": "Want"}}))
    assert uses_command_probes(make_cloud({"solrTLS": {**tls_spec, "clientAuth": "Need"}}))
    assert not uses_command_probes(make_cloud({"solrSecurity": {}}))
    assert uses_command_probes(make_cloud({"solrSecurity": {"probesRequireAuth": True}}))


def test_client_auth_and_probe_auth_use_command_probes(make_cloud, zk_status, tls_spec):
    """Test that probes run SolrCLI with credentials and certificates."""
    cloud = make_cloud(
        {
            "solrTLS": {**tls_spec, "clientAuth": "Need"},
            "solrSecurity": {"probesRequireAuth": True},
        }
    )

    pod_spec = with_tls(base_stateful_set(cloud, zk_status), cloud).spec.template.spec
    container = solr_container(pod_spec)

    for probe in (container.liveness_probe, container.readiness_probe):
        assert probe.http_get is None
        assert probe.timeout_seconds == COMMAND_PROBE_TIMEOUT
        assert probe._exec.command[:2] == ["sh", "-c"]
        command = probe._exec.command[2]
        assert "SolrCLI api -get https://localhost:8983/solr/admin/info/system" in command
        assert "-Dbasicauth=$(cat /etc/secrets/example-solrcloud-basic-auth/username)" in command
        assert "-Djavax.net.ssl.keyStore=$SOLR_SSL_KEY_STORE" in command

    auth_volumes = [v for v in pod_spec.volumes if v.name == "example-solrcloud-basic-auth"]
    assert len(auth_volumes) == 1
    assert auth_volumes[0].secret.default_mode == 0o440
    assert env_dict(container)["SOLR_SSL_NEED_CLIENT_AUTH"].value == "true"


def test_secure_probe_command_without_tls(make_cloud):
    """Test the probe command for basic auth over plain HTTP."""
    cloud = make_cloud({"solrSecurity": {"probesRequireAuth": True, "basicAuthSecret": "my.creds"}})

    command, volume, mount = secure_probe_command(cloud, 8983, "/solr/admin/info/health")

    assert volume.name == "my-creds"
    assert volume.secret.secret_name == "my.creds"
    assert mount.mount_path == "/etc/secrets/my-creds"
    assert command.endswith("http://localhost:8983/solr/admin/info/health")
    assert "PreemptiveBasicAuthClientBuilderFactory" in command
    assert "keyStore" not in command
    assert "  " not in command


def test_secure_probe_command_tls_only(make_cloud, tls_spec):
    """Test that client auth alone needs no secret mount."""
    cloud = make_cloud({"solrTLS": {**tls_spec, "clientAuth": "Need"}})

    command, volume, mount = secure_probe_command(cloud, 8983, "/solr/admin/info/system")

    assert volume is None
    assert mount is None
    assert "basicauth" not in command
    assert command.startswith('JAVA_TOOL_OPTIONS="-Djavax.net.ssl.keyStorePassword=')
