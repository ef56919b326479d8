"""Kubernetes resource templates for a SolrCloud."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from kubernetes import client

from . import crd
from .addressability import (
    advertised_node_host,
    create_ingress_rules,
    create_ingress_tls,
    external_dns_annotations,
    external_options,
    ingress_annotations,
    needs_node_services,
    node_port,
    uses_ingress,
)
from .backup import resolve_backup_repositories
from .k8s import deserialize, serialize
from .labels import labels_and_annotations, merge_labels_or_annotations
from .models import ExistingState
from .overrides import apply_pod_overrides
from .security import resolve_security
from .storage import resolve_data_storage
from .tls import with_tls
from .zookeeper import chroot_setup_handler, create_setup_zk_init_container, create_zk_connection

logger = logging.getLogger(__name__)

DEFAULT_SOLR_XML = """<?xml version="1.0" encoding="UTF-8" ?>
<solr>
  <solrcloud>
    <str name="host">${host:}</str>
    <int name="hostPort">${hostPort:80}</int>
    <str name="hostContext">${hostContext:solr}</str>
    <bool name="genericCoreNodeNames">${genericCoreNodeNames:true}</bool>
    <int name="zkClientTimeout">${zkClientTimeout:30000}</int>
    <int name="distribUpdateSoTimeout">${distribUpdateSoTimeout:600000}</int>
    <int name="distribUpdateConnTimeout">${distribUpdateConnTimeout:60000}</int>
    <str name="zkCredentialsProvider">${zkCredentialsProvider:org.apache.solr.common.cloud.DefaultZkCredentialsProvider}</str>
    <str name="zkACLProvider">${zkACLProvider:org.apache.solr.common.cloud.DefaultZkACLProvider}</str>
  </solrcloud>
  <shardHandlerFactory name="shardHandlerFactory"
    class="HttpShardHandlerFactory">
    <int name="socketTimeout">${socketTimeout:600000}</int>
    <int name="connTimeout">${connTimeout:60000}</int>
  </shardHandlerFactory>
  %s
</solr>
"""

SERVICE_TYPE_LABEL = "service-type"
POD_NAME_LABEL = "statefulset.kubernetes.io/pod-name"


def generate_solr_xml(backup_section=""):
    return DEFAULT_SOLR_XML % backup_section


def owner_references(cloud):
    """Owner reference to the SolrCloud, None when rendering without a uid."""
    if not cloud.metadata.uid:
        return None
    return [
        client.V1OwnerReference(
            api_version=crd.API_VERSION,
            kind=crd.KIND,
            name=cloud.name,
            uid=cloud.metadata.uid,
            controller=True,
            block_owner_deletion=True,
        )
    ]


def _metadata(cloud, name, labels, annotations):
    return client.V1ObjectMeta(
        name=name,
        namespace=cloud.namespace,
        labels=labels,
        annotations=annotations,
        owner_references=owner_references(cloud),
    )


def provided_config_map(cloud, existing, file_name):
    """Name of the user's ConfigMap when it holds ``file_name``, else None."""
    name = cloud.spec.custom_solr_kube_options.config_map_options.provided_config_map
    if name and file_name in existing.provided_config_files:
        return name
    return None


def generate_config_map(cloud, backup_section=""):
    """Create the ConfigMap holding solr.xml."""
    labels, annotations = labels_and_annotations(
        cloud, cloud.spec.custom_solr_kube_options.config_map_options
    )
    return client.V1ConfigMap(
        api_version="v1",
        kind="ConfigMap",
        metadata=_metadata(cloud, cloud.config_map_name(), labels, annotations),
        data={crd.SOLR_XML_FILE: generate_solr_xml(backup_section)},
    )


def _probe(initial_delay, period, handler):
    return client.V1Probe(
        initial_delay_seconds=initial_delay,
        timeout_seconds=1,
        success_threshold=1,
        failure_threshold=3,
        period_seconds=period,
        http_get=handler,
    )


def default_probes(cloud):
    """Liveness and readiness probes against the system info endpoint.

    Returns:
        Tuple of (liveness_probe, readiness_probe)
    """
    port = cloud.spec.solr_addressability.pod_port

    def handler():
        return client.V1HTTPGetAction(
            scheme="HTTP", path="/solr" + crd.DEFAULT_PROBE_PATH, port=port
        )

    return _probe(20, 10, handler()), _probe(15, 5, handler())


def generate_setup_init_containers(cloud, zk, data_volume_name, backup, bootstrap_security_json):
    """Init containers: copy solr.xml into place, then set up ZooKeeper if needed."""
    volume_mounts = [
        client.V1VolumeMount(name=crd.SOLR_XML_VOLUME, mount_path="/tmp"),
        client.V1VolumeMount(name=data_volume_name, mount_path="/tmp-config"),
    ]
    setup_commands = [f"cp /tmp/{crd.SOLR_XML_FILE} /tmp-config/{crd.SOLR_XML_FILE}"]

    # Managed backup volumes must be writable by Solr
    for mount in backup.managed_mounts:
        volume_mounts.append(mount)
        setup_commands.append(
            f"chown -R {crd.DEFAULT_SOLR_USER}:{crd.DEFAULT_SOLR_GROUP} {mount.mount_path}"
        )

    image = cloud.spec.busy_box_image
    containers = [
        client.V1Container(
            name="cp-solr-xml",
            image=image.to_image_name(),
            image_pull_policy=image.pull_policy,
            command=["sh", "-c", " && ".join(setup_commands)],
            volume_mounts=volume_mounts,
        )
    ]

    setup_zk = create_setup_zk_init_container(cloud, zk, bootstrap_security_json)
    if setup_zk is not None:
        containers.append(setup_zk)
    return containers


def _solr_xml_volume(config_map_name):
    return client.V1Volume(
        name=crd.SOLR_XML_VOLUME,
        config_map=client.V1ConfigMapVolumeSource(
            name=config_map_name,
            items=[client.V1KeyToPath(key=crd.SOLR_XML_FILE, path=crd.SOLR_XML_FILE)],
            default_mode=crd.PUBLIC_READ_ONLY_PERMISSIONS,
        ),
    )


def _log_config_mount(config_map_name, solr_xml_volume):
    """Mount a user-provided log4j2.xml.

    /var/solr itself cannot be a mount path, so the file goes into a
    sub-directory named after the ConfigMap.

    Returns:
        Tuple of (volume_mount, env_var, new_volume or None)
    """
    volume_name = crd.LOG_XML_FILE.replace(".", "-")
    mount_path = f"/var/solr/{config_map_name}"
    new_volume = None
    if solr_xml_volume.config_map.name == config_map_name:
        solr_xml_volume.config_map.items.append(
            client.V1KeyToPath(key=crd.LOG_XML_FILE, path=crd.LOG_XML_FILE)
        )
        volume_name = solr_xml_volume.name
    else:
        new_volume = client.V1Volume(
            name=volume_name,
            config_map=client.V1ConfigMapVolumeSource(
                name=config_map_name,
                items=[client.V1KeyToPath(key=crd.LOG_XML_FILE, path=crd.LOG_XML_FILE)],
                default_mode=crd.PUBLIC_READ_ONLY_PERMISSIONS,
            ),
        )
    return (
        client.V1VolumeMount(name=volume_name, mount_path=mount_path),
        client.V1EnvVar(name="LOG4J_PROPS", value=f"{mount_path}/{crd.LOG_XML_FILE}"),
        new_volume,
    )


def _host_aliases(host_name_ips):
    if not host_name_ips:
        return None
    return [
        client.V1HostAlias(ip=host_name_ips[host], hostnames=[host])
        for host in sorted(host_name_ips)
    ]


def build_stateful_set(cloud, status, existing, backup, security):
    """Assemble the StatefulSet before TLS and user pod options are applied."""
    options = cloud.spec.custom_solr_kube_options
    pod_options = options.pod_options
    solr_pod_port = cloud.spec.solr_addressability.pod_port

    termination_grace_period = crd.DEFAULT_TERMINATION_GRACE_PERIOD
    if pod_options.termination_grace_period_seconds is not None:
        termination_grace_period = pod_options.termination_grace_period_seconds

    zk = create_zk_connection(cloud, status)

    # Volumes and mounts
    solr_xml_config_map = (
        provided_config_map(cloud, existing, crd.SOLR_XML_FILE) or cloud.config_map_name()
    )
    solr_xml_volume = _solr_xml_volume(solr_xml_config_map)
    claim_templates, data_volumes, data_volume_name = resolve_data_storage(cloud)
    volumes = [solr_xml_volume, *data_volumes, *backup.volumes]
    volume_mounts = [
        client.V1VolumeMount(name=data_volume_name, mount_path=crd.SOLR_HOME),
        *backup.volume_mounts,
    ]

    pod_annotations = {}

    # Environment
    solr_stop_wait = max(termination_grace_period - 5, 0)
    env_vars = [
        client.V1EnvVar(name="SOLR_JAVA_MEM", value=cloud.spec.solr_java_mem),
        client.V1EnvVar(name="SOLR_HOME", value=crd.SOLR_HOME),
        # Port Jetty listens on
        client.V1EnvVar(name="SOLR_PORT", value=str(solr_pod_port)),
        # Port the node advertises in live_nodes
        client.V1EnvVar(name="SOLR_NODE_PORT", value=str(node_port(cloud))),
        client.V1EnvVar(
            name="POD_HOSTNAME",
            value_from=client.V1EnvVarSource(
                field_ref=client.V1ObjectFieldSelector(field_path="metadata.name", api_version="v1")
            ),
        ),
        client.V1EnvVar(name="SOLR_HOST", value=advertised_node_host(cloud, "$(POD_HOSTNAME)")),
        client.V1EnvVar(name="SOLR_LOG_LEVEL", value=cloud.spec.solr_log_level),
        client.V1EnvVar(name="GC_TUNE", value=cloud.spec.solr_gc_tune),
        client.V1EnvVar(name="SOLR_STOP_WAIT", value=str(solr_stop_wait)),
        *zk.env_vars,
        *backup.env_vars,
    ]
    env_vars.extend(deserialize(pod_options.env_variables, "list[V1EnvVar]") or [])

    log_config_map = provided_config_map(cloud, existing, crd.LOG_XML_FILE)
    if log_config_map is not None:
        volume_mount, env_var, new_volume = _log_config_mount(log_config_map, solr_xml_volume)
        volume_mounts.append(volume_mount)
        env_vars.append(env_var)
        if new_volume is not None:
            volumes.append(new_volume)
        log_xml_md5 = existing.provided_config_files.get(crd.LOG_XML_FILE)
        if log_xml_md5:
            pod_annotations[crd.LOG_XML_MD5_ANNOTATION] = log_xml_md5

    # Roll the pods when a provided solr.xml changes
    if solr_xml_config_map != cloud.config_map_name():
        solr_xml_md5 = existing.provided_config_files.get(crd.SOLR_XML_FILE)
        if solr_xml_md5:
            pod_annotations[crd.SOLR_XML_MD5_ANNOTATION] = solr_xml_md5

    if security.basic_auth_md5:
        pod_annotations[crd.BASIC_AUTH_MD5_ANNOTATION] = security.basic_auth_md5

    solr_opts = ["-DhostPort=$(SOLR_NODE_PORT)", *zk.solr_opts]
    allow_paths = backup.allow_paths()
    if allow_paths:
        solr_opts.append(f"-Dsolr.allowPaths={','.join(allow_paths)}")
    if cloud.spec.solr_opts:
        solr_opts.append(cloud.spec.solr_opts)
    # Last, so it can reference every other env var
    env_vars.append(client.V1EnvVar(name="SOLR_OPTS", value=" ".join(solr_opts)))

    liveness_probe, readiness_probe = default_probes(cloud)
    solr_image = cloud.spec.solr_image
    container = client.V1Container(
        name=crd.SOLR_NODE_CONTAINER,
        image=solr_image.to_image_name(),
        image_pull_policy=solr_image.pull_policy,
        ports=[
            client.V1ContainerPort(
                container_port=solr_pod_port, name=crd.SOLR_CLIENT_PORT_NAME, protocol="TCP"
            )
        ],
        liveness_probe=liveness_probe,
        readiness_probe=readiness_probe,
        volume_mounts=volume_mounts,
        env=env_vars,
        lifecycle=client.V1Lifecycle(
            post_start=chroot_setup_handler(zk),
            pre_stop=client.V1LifecycleHandler(
                _exec=client.V1ExecAction(command=["solr", "stop", "-p", str(solr_pod_port)])
            ),
        ),
    )

    # Labels
    ss_labels, ss_annotations = labels_and_annotations(
        cloud,
        options.stateful_set_options,
        base_annotations={crd.ZK_CONNECTION_STRING_ANNOTATION: zk.connection_string},
    )
    pod_labels, user_pod_annotations = labels_and_annotations(cloud, pod_options)

    update_strategy = "OnDelete"
    if cloud.spec.update_strategy.method == "StatefulSet":
        update_strategy = "RollingUpdate"

    return client.V1StatefulSet(
        api_version="apps/v1",
        kind="StatefulSet",
        metadata=_metadata(cloud, cloud.stateful_set_name(), ss_labels, ss_annotations),
        spec=client.V1StatefulSetSpec(
            selector=client.V1LabelSelector(match_labels=cloud.shared_labels()),
            service_name=cloud.headless_service_name(),
            replicas=cloud.spec.replicas,
            pod_management_policy=(
                options.stateful_set_options.pod_management_policy
                or crd.DEFAULT_POD_MANAGEMENT_POLICY
            ),
            update_strategy=client.V1StatefulSetUpdateStrategy(type=update_strategy),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(
                    labels=pod_labels,
                    annotations=merge_labels_or_annotations(user_pod_annotations, pod_annotations),
                ),
                spec=client.V1PodSpec(
                    termination_grace_period_seconds=termination_grace_period,
                    security_context=client.V1PodSecurityContext(fs_group=crd.DEFAULT_SOLR_GROUP),
                    volumes=volumes,
                    init_containers=generate_setup_init_containers(
                        cloud,
                        zk,
                        data_volume_name,
                        backup,
                        bootstrap_security_json=security.bootstrap_secret is not None,
                    ),
                    host_aliases=_host_aliases(existing.host_name_ips),
                    containers=[container],
                ),
            ),
            volume_claim_templates=claim_templates or None,
        ),
    )


def generate_stateful_set(cloud, status, existing=None, backup=None, security=None):
    """Create the Solr StatefulSet: base template, then TLS, then user pod options."""
    existing = existing or ExistingState()
    if backup is None:
        backup = resolve_backup_repositories(cloud)
    if security is None:
        security = resolve_security(cloud, existing)

    stateful_set = build_stateful_set(cloud, status, existing, backup, security)
    stateful_set = with_tls(stateful_set, cloud, existing.tls_cert_md5)
    return apply_pod_overrides(stateful_set, cloud)


def _service_port(port):
    return client.V1ServicePort(
        name=crd.SOLR_CLIENT_PORT_NAME,
        port=port,
        protocol="TCP",
        target_port=crd.SOLR_CLIENT_PORT_NAME,
    )


def generate_common_service(cloud):
    """Create the Service load balancing over all Solr nodes."""
    ext = external_options(cloud)
    labels, annotations = labels_and_annotations(
        cloud,
        cloud.spec.custom_solr_kube_options.common_service_options,
        extra_labels={SERVICE_TYPE_LABEL: "common"},
        base_annotations=external_dns_annotations(cloud, hidden=ext is not None and ext.hide_common),
    )
    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=_metadata(cloud, cloud.common_service_name(), labels, annotations),
        spec=client.V1ServiceSpec(
            ports=[_service_port(cloud.spec.solr_addressability.common_service_port)],
            selector=cloud.shared_labels(),
        ),
    )


def generate_headless_service(cloud):
    """Create the headless Service giving every pod a DNS name.

    Not-ready addresses are published so each pod is reachable regardless
    of its readiness.
    """
    ext = external_options(cloud)
    labels, annotations = labels_and_annotations(
        cloud,
        cloud.spec.custom_solr_kube_options.headless_service_options,
        extra_labels={SERVICE_TYPE_LABEL: "headless"},
        base_annotations=external_dns_annotations(cloud, hidden=ext is not None and ext.hide_nodes),
    )
    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=_metadata(cloud, cloud.headless_service_name(), labels, annotations),
        spec=client.V1ServiceSpec(
            ports=[_service_port(node_port(cloud))],
            selector=cloud.shared_labels(),
            cluster_ip="None",
            publish_not_ready_addresses=True,
        ),
    )


def generate_node_service(cloud, node_name):
    """Create the Service for a single Solr pod, used as an ingress backend."""
    labels, annotations = labels_and_annotations(
        cloud,
        cloud.spec.custom_solr_kube_options.node_service_options,
        extra_labels={SERVICE_TYPE_LABEL: "external"},
    )
    selector = cloud.shared_labels()
    selector[POD_NAME_LABEL] = node_name
    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=_metadata(cloud, node_name, labels, annotations),
        spec=client.V1ServiceSpec(
            ports=[_service_port(node_port(cloud))],
            selector=selector,
            publish_not_ready_addresses=True,
        ),
    )


def generate_ingress(cloud):
    """Create the Ingress for the common endpoint and every node.

    Returns None when the cloud is not exposed through an Ingress, or when
    there are no hosts to route.
    """
    if not uses_ingress(cloud):
        return None

    domains = external_options(cloud).all_domains()
    if not domains:
        logger.warning(f"SolrCloud {cloud.name} uses an Ingress without a domain name, skipping it")
        return None

    rules, hosts = create_ingress_rules(cloud, cloud.node_names(), domains)
    if not rules:
        logger.info(f"SolrCloud {cloud.name} hides all endpoints, skipping the Ingress")
        return None

    ingress_options = cloud.spec.custom_solr_kube_options.ingress_options
    labels, annotations = labels_and_annotations(cloud, ingress_options)
    ingress_tls = create_ingress_tls(cloud, hosts)
    annotations = ingress_annotations(cloud, annotations, fronted_by_tls=bool(ingress_tls))

    return client.V1Ingress(
        api_version="networking.k8s.io/v1",
        kind="Ingress",
        metadata=_metadata(cloud, cloud.common_ingress_name(), labels, annotations),
        spec=client.V1IngressSpec(
            ingress_class_name=ingress_options.ingress_class_name or None,
            rules=rules,
            tls=ingress_tls or None,
        ),
    )


@dataclass
class GeneratedArtifacts:
    """Everything derived for one SolrCloud in one pass."""

    stateful_set: client.V1StatefulSet
    config_map: Optional[client.V1ConfigMap]
    common_service: client.V1Service
    headless_service: client.V1Service
    node_services: list = field(default_factory=list)
    ingress: Optional[client.V1Ingress] = None
    basic_auth_secret: Optional[client.V1Secret] = None
    bootstrap_secret: Optional[client.V1Secret] = None

    def objects(self):
        """Generated objects in apply order, skipping the absent ones."""
        candidates = [
            self.basic_auth_secret,
            self.bootstrap_secret,
            self.config_map,
            self.common_service,
            self.headless_service,
            *self.node_services,
            self.stateful_set,
            self.ingress,
        ]
        return [obj for obj in candidates if obj is not None]

    def to_manifests(self):
        manifests = []
        for obj in self.objects():
            manifest = serialize(obj)
            if isinstance(obj, client.V1Secret):
                manifest.setdefault("apiVersion", "v1")
                manifest.setdefault("kind", "Secret")
            manifests.append(manifest)
        return manifests


def generate_artifacts(cloud, status, existing=None, random_source=None):
    """Derive every object a SolrCloud needs.

    Args:
        cloud: The SolrCloud resource
        status: Its observed SolrCloudStatus, may be None
        existing: ExistingState snapshot of persisted state
        random_source: random.Random compatible source for new credentials

    Returns:
        GeneratedArtifacts
    """
    existing = existing or ExistingState()

    backup = resolve_backup_repositories(cloud)
    security = resolve_security(cloud, existing, random_source)
    if security.generated:
        for secret in (security.basic_auth_secret, security.bootstrap_secret):
            secret.metadata.owner_references = owner_references(cloud)

    config_map = None
    if provided_config_map(cloud, existing, crd.SOLR_XML_FILE) is None:
        config_map = generate_config_map(cloud, backup.solr_xml_section)

    node_services = []
    if needs_node_services(cloud):
        node_services = [generate_node_service(cloud, n) for n in cloud.node_names()]

    return GeneratedArtifacts(
        stateful_set=generate_stateful_set(cloud, status, existing, backup, security),
        config_map=config_map,
        common_service=generate_common_service(cloud),
        headless_service=generate_headless_service(cloud),
        node_services=node_services,
        ingress=generate_ingress(cloud),
        basic_auth_secret=security.basic_auth_secret,
        bootstrap_secret=security.bootstrap_secret,
    )
