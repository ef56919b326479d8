"""Core reconciliation logic."""

import base64
import hashlib
import logging

from . import crd
from .addressability import external_node_host, external_options, uses_external_address, uses_ingress
from .k8s import (
    create_if_absent,
    create_or_patch,
    get_clients,
    read_config_map,
    read_secret,
    read_service,
)
from .models import ExistingState, SolrCloud, SolrCloudStatus
from .templates import generate_artifacts, provided_config_map
from .zookeeper import resolve_server_and_chroot

logger = logging.getLogger(__name__)


def _md5(value) -> str:
    if isinstance(value, str):
        value = value.encode("utf-8")
    return hashlib.md5(value).hexdigest()


def read_existing_secrets(v1, cloud):
    """Secrets the engine must not regenerate, keyed by name."""
    if cloud.spec.solr_security is None:
        return {}
    secrets = {}
    for name in (cloud.basic_auth_secret_name(), cloud.security_bootstrap_secret_name()):
        secret = read_secret(v1, name, cloud.namespace)
        if secret is not None:
            secrets[name] = secret
    return secrets


def read_provided_config_files(v1, cloud):
    """md5 of solr.xml and log4j2.xml found in the user-provided ConfigMap."""
    name = cloud.spec.custom_solr_kube_options.config_map_options.provided_config_map
    if not name:
        return {}
    config_map = read_config_map(v1, name, cloud.namespace)
    if config_map is None:
        raise ValueError(f"Provided ConfigMap {name} not found in namespace {cloud.namespace}")

    data = config_map.data or {}
    files = {}
    for file_name in (crd.SOLR_XML_FILE, crd.LOG_XML_FILE):
        if file_name in data:
            files[file_name] = _md5(data[file_name])
    if crd.SOLR_XML_FILE in files and "${hostPort:" not in data[crd.SOLR_XML_FILE]:
        raise ValueError(
            f"Custom solr.xml in ConfigMap {name} must contain a placeholder for the 'hostPort' "
            "variable, such as: <int name=\"hostPort\">${hostPort:80}</int>"
        )
    return files


def read_tls_cert_md5(v1, cloud):
    """Digest of the keystore, tracked only when pods restart on certificate updates."""
    tls = cloud.spec.solr_tls
    if tls is None or not tls.restart_on_tls_secret_update or tls.pkcs12_secret is None:
        return ""
    secret = read_secret(v1, tls.pkcs12_secret.name, cloud.namespace)
    if secret is None or tls.pkcs12_secret.key not in (secret.data or {}):
        raise ValueError(
            f"TLS secret {tls.pkcs12_secret.name} has no key {tls.pkcs12_secret.key}"
        )
    return _md5(base64.b64decode(secret.data[tls.pkcs12_secret.key]))


def read_host_name_ips(v1, cloud):
    """Resolve external node hosts to node service IPs, so pods reach each other
    without leaving the cluster."""
    if not (uses_ingress(cloud) and uses_external_address(cloud)):
        return {}
    domains = external_options(cloud).all_domains()
    host_name_ips = {}
    for node_name in cloud.node_names():
        service = read_service(v1, node_name, cloud.namespace)
        if service is None or not service.spec.cluster_ip or service.spec.cluster_ip == "None":
            continue
        for domain in domains:
            host_name_ips[external_node_host(cloud, node_name, domain)] = service.spec.cluster_ip
    return host_name_ips


def collect_existing_state(v1, cloud):
    """Read the persisted state the engine depends on."""
    return ExistingState(
        secrets=read_existing_secrets(v1, cloud),
        provided_config_files=read_provided_config_files(v1, cloud),
        tls_cert_md5=read_tls_cert_md5(v1, cloud),
        host_name_ips=read_host_name_ips(v1, cloud),
    )


def apply_artifacts(v1, apps_v1, networking_v1, artifacts, namespace):
    """Create or patch every generated object.

    Secrets are only ever created: existing credentials are never replaced.

    Returns:
        Dict of object name -> "created" | "patched" | "exists"
    """
    results = {}
    for secret in (artifacts.basic_auth_secret, artifacts.bootstrap_secret):
        if secret is None:
            continue
        results[secret.metadata.name] = create_if_absent(
            v1.read_namespaced_secret,
            v1.create_namespaced_secret,
            secret.metadata.name,
            namespace,
            secret,
            "Secret",
        )

    if artifacts.config_map is not None:
        results[artifacts.config_map.metadata.name] = create_or_patch(
            v1.read_namespaced_config_map,
            v1.create_namespaced_config_map,
            v1.patch_namespaced_config_map,
            artifacts.config_map.metadata.name,
            namespace,
            artifacts.config_map,
            "ConfigMap",
        )

    for service in (artifacts.common_service, artifacts.headless_service, *artifacts.node_services):
        results[service.metadata.name] = create_or_patch(
            v1.read_namespaced_service,
            v1.create_namespaced_service,
            v1.patch_namespaced_service,
            service.metadata.name,
            namespace,
            service,
            "Service",
        )

    stateful_set = artifacts.stateful_set
    results[stateful_set.metadata.name] = create_or_patch(
        apps_v1.read_namespaced_stateful_set,
        apps_v1.create_namespaced_stateful_set,
        apps_v1.patch_namespaced_stateful_set,
        stateful_set.metadata.name,
        namespace,
        stateful_set,
        "StatefulSet",
    )

    if artifacts.ingress is not None:
        results[artifacts.ingress.metadata.name] = create_or_patch(
            networking_v1.read_namespaced_ingress,
            networking_v1.create_namespaced_ingress,
            networking_v1.patch_namespaced_ingress,
            artifacts.ingress.metadata.name,
            namespace,
            artifacts.ingress,
            "Ingress",
        )
    return results


def reconcile_solrcloud(spec, status, name, namespace, uid, meta=None, random_source=None, **kwargs):
    """Reconcile a SolrCloud resource.

    Returns:
        Dict of status fields to store on the SolrCloud
    """
    v1, apps_v1, networking_v1 = get_clients()

    cloud = SolrCloud.from_resource(name, namespace, spec, {**(meta or {}), "uid": uid})
    cloud_status = SolrCloudStatus.model_validate(dict(status or {}))

    server, chroot = resolve_server_and_chroot(cloud, cloud_status)
    existing = collect_existing_state(v1, cloud)
    artifacts = generate_artifacts(cloud, cloud_status, existing, random_source)
    results = apply_artifacts(v1, apps_v1, networking_v1, artifacts, namespace)

    created = sorted(n for n, r in results.items() if r == "created")
    if created:
        logger.info(f"SolrCloud {name}: created {', '.join(created)}")

    port = cloud.spec.solr_addressability.common_service_port
    return {
        "zookeeperConnectionInfo": {
            "internalConnectionString": server,
            "chroot": chroot,
        },
        "replicas": cloud.spec.replicas,
        "internalCommonAddress": (
            f"{cloud.url_scheme()}://{cloud.common_service_name()}.{namespace}:{port}"
        ),
        "solrXmlConfigMap": (
            provided_config_map(cloud, existing, crd.SOLR_XML_FILE) or cloud.config_map_name()
        ),
        "message": "Resources reconciled",
    }
