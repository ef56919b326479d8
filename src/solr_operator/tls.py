"""Enable TLS and secured health checks on a generated Solr StatefulSet."""

import copy
import logging
import re

from kubernetes import client

from . import crd
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

TLS_DIR = "/var/solr/tls"
KEYSTORE_VOLUME = "keystore"
TRUSTSTORE_VOLUME = "truststore"
KEYSTORE_FILE = "keystore.p12"
TRUSTSTORE_FILE = "truststore.p12"

# Checks run a JVM, one second is not enough for it to start
COMMAND_PROBE_TIMEOUT = 5

PREEMPTIVE_BASIC_AUTH_FACTORY = (
    "-Dsolr.httpclient.builder.factory="
    "org.apache.solr.client.solrj.impl.PreemptiveBasicAuthClientBuilderFactory"
)


def url_scheme_cluster_prop_command():
    """Shell step setting the urlScheme=https cluster property in ZooKeeper."""
    return (
        "/opt/solr/server/scripts/cloud-scripts/zkcli.sh -zkhost ${ZK_HOST} "
        "-cmd clusterprop -name urlScheme -val https"
    )


def uses_command_probes(cloud):
    """Whether probes must run SolrCLI instead of a plain HTTP GET.

    Either the server asks for client certificates, which the kubelet
    cannot present, or the probe endpoints sit behind basic auth.
    """
    tls = cloud.spec.solr_tls
    security = cloud.spec.solr_security
    return (tls is not None and tls.client_auth != "None") or (
        security is not None and security.probes_require_auth
    )


def _secret_env(name, selector):
    return client.V1EnvVar(
        name=name,
        value_from=client.V1EnvVarSource(
            secret_key_ref=client.V1SecretKeySelector(name=selector.name, key=selector.key)
        ),
    )


def _tls_env_vars(tls):
    return [
        client.V1EnvVar(name="SOLR_SSL_ENABLED", value="true"),
        client.V1EnvVar(name="SOLR_SSL_WANT_CLIENT_AUTH", value=str(tls.client_auth == "Want").lower()),
        client.V1EnvVar(name="SOLR_SSL_NEED_CLIENT_AUTH", value=str(tls.client_auth == "Need").lower()),
        client.V1EnvVar(
            name="SOLR_SSL_CLIENT_HOSTNAME_VERIFICATION",
            value=str(tls.verify_client_hostname).lower(),
        ),
        client.V1EnvVar(name="SOLR_SSL_CHECK_PEER_NAME", value=str(tls.check_peer_name).lower()),
    ]


def _keystore_secret_mounts(tls):
    """Volumes, mounts and env vars for a PKCS12 keystore kept in a secret."""
    if tls.key_store_password_secret is None:
        raise ConfigurationError(
            "solrTLS.pkcs12Secret requires solrTLS.keyStorePasswordSecret",
            "Reference the secret key holding the keystore password",
        )

    keystore_path = f"{TLS_DIR}/{KEYSTORE_FILE}"
    truststore_path = keystore_path

    items = [client.V1KeyToPath(key=tls.pkcs12_secret.key, path=KEYSTORE_FILE)]
    volumes = []
    mounts = [client.V1VolumeMount(name=KEYSTORE_VOLUME, mount_path=TLS_DIR, read_only=True)]

    truststore = tls.trust_store_secret
    if truststore is not None:
        if truststore.name == tls.pkcs12_secret.name:
            items.append(client.V1KeyToPath(key=truststore.key, path=TRUSTSTORE_FILE))
            truststore_path = f"{TLS_DIR}/{TRUSTSTORE_FILE}"
        else:
            volumes.append(
                client.V1Volume(
                    name=TRUSTSTORE_VOLUME,
                    secret=client.V1SecretVolumeSource(
                        secret_name=truststore.name,
                        items=[client.V1KeyToPath(key=truststore.key, path=TRUSTSTORE_FILE)],
                        default_mode=crd.PUBLIC_READ_ONLY_PERMISSIONS,
                    ),
                )
            )
            mounts.append(
                client.V1VolumeMount(
                    name=TRUSTSTORE_VOLUME, mount_path=f"{TLS_DIR}/truststore", read_only=True
                )
            )
            truststore_path = f"{TLS_DIR}/truststore/{TRUSTSTORE_FILE}"

    volumes.insert(
        0,
        client.V1Volume(
            name=KEYSTORE_VOLUME,
            secret=client.V1SecretVolumeSource(
                secret_name=tls.pkcs12_secret.name,
                items=items,
                default_mode=crd.PUBLIC_READ_ONLY_PERMISSIONS,
            ),
        ),
    )

    trust_password = tls.trust_store_password_secret or tls.key_store_password_secret
    env_vars = [
        client.V1EnvVar(name="SOLR_SSL_KEY_STORE", value=keystore_path),
        _secret_env("SOLR_SSL_KEY_STORE_PASSWORD", tls.key_store_password_secret),
        client.V1EnvVar(name="SOLR_SSL_TRUST_STORE", value=truststore_path),
        _secret_env("SOLR_SSL_TRUST_STORE_PASSWORD", trust_password),
    ]
    return volumes, mounts, env_vars


def _mounted_dir_paths(mounted):
    keystore = f"{mounted.path}/{mounted.keystore_file}"
    truststore = f"{mounted.path}/{mounted.truststore_file}"
    keystore_password = f"{mounted.path}/{mounted.keystore_password_file}"
    truststore_password = (
        f"{mounted.path}/{mounted.truststore_password_file}"
        if mounted.truststore_password_file
        else keystore_password
    )
    return keystore, truststore, keystore_password, truststore_password


def _mounted_dir_start_command(mounted):
    """Start Solr with keystore passwords read from the mounted files."""
    _, _, keystore_password, truststore_password = _mounted_dir_paths(mounted)
    return [
        "sh",
        "-c",
        f'export SOLR_SSL_KEY_STORE_PASSWORD="$(cat {keystore_password})"; '
        f'export SOLR_SSL_TRUST_STORE_PASSWORD="$(cat {truststore_password})"; '
        "exec solr-foreground",
    ]


def _probe_tls_java_opts(cloud):
    """JAVA_TOOL_OPTIONS and system properties SolrCLI needs to speak TLS."""
    tls = cloud.spec.solr_tls
    if tls is None:
        return "", ""
    if tls.mounted_tls_dir is not None:
        keystore, truststore, keystore_password, truststore_password = _mounted_dir_paths(
            tls.mounted_tls_dir
        )
        tool_opts = (
            f"-Djavax.net.ssl.keyStorePassword=$(cat {keystore_password}) "
            f"-Djavax.net.ssl.trustStorePassword=$(cat {truststore_password})"
        )
        sys_props = f"-Djavax.net.ssl.keyStore={keystore} -Djavax.net.ssl.trustStore={truststore}"
    else:
        tool_opts = (
            "-Djavax.net.ssl.keyStorePassword=$SOLR_SSL_KEY_STORE_PASSWORD "
            "-Djavax.net.ssl.trustStorePassword=$SOLR_SSL_TRUST_STORE_PASSWORD"
        )
        sys_props = (
            "-Djavax.net.ssl.keyStore=$SOLR_SSL_KEY_STORE "
            "-Djavax.net.ssl.trustStore=$SOLR_SSL_TRUST_STORE"
        )
    return tool_opts, sys_props + " -Djavax.net.ssl.keyStoreType=PKCS12 -Djavax.net.ssl.trustStoreType=PKCS12"


def secure_probe_command(cloud, port, path):
    """Build the SolrCLI probe command plus the basic auth secret mount it needs.

    Credentials are read from the mounted secret each time the probe runs,
    env vars would keep serving the values from pod start.

    Returns:
        Tuple of (command, volume or None, volume_mount or None)
    """
    basic_auth_option = ""
    enable_basic_auth = ""
    volume = None
    volume_mount = None

    security = cloud.spec.solr_security
    if security is not None and security.probes_require_auth:
        secret_name = cloud.basic_auth_secret_name()
        volume_name = secret_name.replace(".", "-")
        volume = client.V1Volume(
            name=volume_name,
            secret=client.V1SecretVolumeSource(
                secret_name=secret_name,
                default_mode=crd.SECRET_READ_ONLY_PERMISSIONS,
            ),
        )
        mount_path = f"/etc/secrets/{volume_name}"
        volume_mount = client.V1VolumeMount(name=volume_name, mount_path=mount_path)
        basic_auth_option = (
            f"-Dbasicauth=$(cat {mount_path}/{crd.BASIC_AUTH_USERNAME_KEY})"
            f":$(cat {mount_path}/{crd.BASIC_AUTH_PASSWORD_KEY})"
        )
        enable_basic_auth = PREEMPTIVE_BASIC_AUTH_FACTORY

    tls_tool_opts, tls_sys_props = _probe_tls_java_opts(cloud)
    java_tool_options = f"{basic_auth_option} {tls_tool_opts}".strip()

    command = (
        f'JAVA_TOOL_OPTIONS="{java_tool_options}" java {tls_sys_props} {enable_basic_auth} '
        '-Dsolr.install.dir="/opt/solr" '
        '-Dlog4j.configurationFile="/opt/solr/server/resources/log4j2-console.xml" '
        '-classpath "/opt/solr/server/solr-webapp/webapp/WEB-INF/lib/*:'
        '/opt/solr/server/lib/ext/*:/opt/solr/server/lib/*" '
        f"org.apache.solr.util.SolrCLI api -get {cloud.url_scheme()}://localhost:{port}{path}"
    )
    command = re.sub(r"\s+", " ", command.strip())
    return command, volume, volume_mount


def _insert_env_before_solr_opts(env, new_vars):
    """SOLR_OPTS stays last so it can reference every other env var."""
    env = list(env or [])
    index = next((i for i, e in enumerate(env) if e.name == "SOLR_OPTS"), len(env))
    return env[:index] + list(new_vars) + env[index:]


def _http_probes(container):
    return [
        p
        for p in (container.liveness_probe, container.readiness_probe, container.startup_probe)
        if p is not None and p.http_get is not None
    ]


def solr_container(pod_spec):
    return next(c for c in pod_spec.containers if c.name == crd.SOLR_NODE_CONTAINER)


def with_tls(stateful_set, cloud, tls_cert_md5=""):
    """Return a copy of ``stateful_set`` with TLS and secured probes applied.

    The input object is left untouched.
    """
    stateful_set = copy.deepcopy(stateful_set)
    pod_template = stateful_set.spec.template
    pod_spec = pod_template.spec
    container = solr_container(pod_spec)

    tls = cloud.spec.solr_tls
    if tls is not None:
        env_vars = _tls_env_vars(tls)
        if tls.pkcs12_secret is not None:
            volumes, mounts, store_env = _keystore_secret_mounts(tls)
            pod_spec.volumes = list(pod_spec.volumes or []) + volumes
            container.volume_mounts = list(container.volume_mounts or []) + mounts
            env_vars.extend(store_env)
        elif tls.mounted_tls_dir is not None:
            keystore, truststore, _, _ = _mounted_dir_paths(tls.mounted_tls_dir)
            env_vars.append(client.V1EnvVar(name="SOLR_SSL_KEY_STORE", value=keystore))
            env_vars.append(client.V1EnvVar(name="SOLR_SSL_TRUST_STORE", value=truststore))
            container.command = _mounted_dir_start_command(tls.mounted_tls_dir)
        else:
            raise ConfigurationError(
                f"solrTLS for SolrCloud {cloud.name} has no certificate source",
                "Set either solrTLS.pkcs12Secret or solrTLS.mountedTLSDir",
            )
        container.env = _insert_env_before_solr_opts(container.env, env_vars)

        for probe in _http_probes(container):
            probe.http_get.scheme = "HTTPS"

        if tls.restart_on_tls_secret_update and tls_cert_md5:
            annotations = dict(pod_template.metadata.annotations or {})
            annotations[crd.TLS_CERT_MD5_ANNOTATION] = tls_cert_md5
            pod_template.metadata.annotations = annotations

    if uses_command_probes(cloud):
        volume_added = False
        for probe in _http_probes(container):
            command, volume, volume_mount = secure_probe_command(
                cloud, probe.http_get.port, probe.http_get.path
            )
            if volume is not None and not volume_added:
                pod_spec.volumes = list(pod_spec.volumes or []) + [volume]
                container.volume_mounts = list(container.volume_mounts or []) + [volume_mount]
                volume_added = True
            probe.http_get = None
            probe._exec = client.V1ExecAction(command=["sh", "-c", command])
            probe.timeout_seconds = COMMAND_PROBE_TIMEOUT
        logger.debug(f"SolrCloud {cloud.name} uses command based probes")

    return stateful_set
