"""User pod options applied on top of the generated StatefulSet.

Each step handles one field and does nothing when the user left it unset.
Steps run in order, after TLS, so user settings beat computed defaults.
"""

import copy

from kubernetes import client

from .k8s import deserialize
from .tls import solr_container

STARTUP_PROBE_TIMEOUT = 30
STARTUP_PROBE_FAILURE_THRESHOLD = 15

PROBE_SETTINGS = (
    "initial_delay_seconds",
    "timeout_seconds",
    "success_threshold",
    "failure_threshold",
    "period_seconds",
)


def customize_probe(base, custom):
    """Overlay the non-zero settings and the handler of ``custom`` on ``base``."""
    probe = copy.deepcopy(base) if base is not None else client.V1Probe()
    override = deserialize(custom, "V1Probe")
    for attr in PROBE_SETTINGS:
        value = getattr(override, attr)
        if value:
            setattr(probe, attr, value)
    if override._exec is not None or override.http_get is not None or override.tcp_socket is not None:
        probe._exec = override._exec
        probe.http_get = override.http_get
        probe.tcp_socket = override.tcp_socket
    return probe


def _service_account(pod_spec, container, options, cloud):
    if options.service_account_name:
        pod_spec.service_account_name = options.service_account_name


def _affinity(pod_spec, container, options, cloud):
    if options.affinity is not None:
        pod_spec.affinity = deserialize(options.affinity, "V1Affinity")


def _resources(pod_spec, container, options, cloud):
    if options.resources.get("limits") or options.resources.get("requests"):
        container.resources = deserialize(options.resources, "V1ResourceRequirements")


def _pod_security_context(pod_spec, container, options, cloud):
    if options.pod_security_context is not None:
        pod_spec.security_context = deserialize(options.pod_security_context, "V1PodSecurityContext")


def _lifecycle(pod_spec, container, options, cloud):
    if options.lifecycle is not None:
        container.lifecycle = deserialize(options.lifecycle, "V1Lifecycle")


def _tolerations(pod_spec, container, options, cloud):
    if options.tolerations is not None:
        pod_spec.tolerations = deserialize(options.tolerations, "list[V1Toleration]")


def _node_selector(pod_spec, container, options, cloud):
    if options.node_selector is not None:
        pod_spec.node_selector = dict(options.node_selector)


def _startup_probe(pod_spec, container, options, cloud):
    if options.startup_probe is None:
        return
    # Solr has no startup probe by default, start from the liveness probe
    base = copy.deepcopy(container.liveness_probe)
    base.timeout_seconds = STARTUP_PROBE_TIMEOUT
    base.failure_threshold = STARTUP_PROBE_FAILURE_THRESHOLD
    container.startup_probe = customize_probe(base, options.startup_probe)


def _liveness_probe(pod_spec, container, options, cloud):
    if options.liveness_probe is not None:
        container.liveness_probe = customize_probe(container.liveness_probe, options.liveness_probe)


def _readiness_probe(pod_spec, container, options, cloud):
    if options.readiness_probe is not None:
        container.readiness_probe = customize_probe(container.readiness_probe, options.readiness_probe)


def _priority_class(pod_spec, container, options, cloud):
    if options.priority_class_name:
        pod_spec.priority_class_name = options.priority_class_name


def _init_containers(pod_spec, container, options, cloud):
    if options.init_containers:
        extra = deserialize(options.init_containers, "list[V1Container]")
        pod_spec.init_containers = list(pod_spec.init_containers or []) + extra


def _sidecar_containers(pod_spec, container, options, cloud):
    if options.sidecar_containers:
        extra = deserialize(options.sidecar_containers, "list[V1Container]")
        pod_spec.containers = list(pod_spec.containers) + extra


def _volumes(pod_spec, container, options, cloud):
    for volume in options.volumes:
        pod_spec.volumes = list(pod_spec.volumes or []) + [
            deserialize({**volume.source, "name": volume.name}, "V1Volume")
        ]
        # Only mounted into Solr when the user asks for it
        if volume.default_container_mount is not None:
            mount = deserialize({**volume.default_container_mount, "name": volume.name}, "V1VolumeMount")
            container.volume_mounts = list(container.volume_mounts or []) + [mount]


def _image_pull_secrets(pod_spec, container, options, cloud):
    secrets = deserialize(options.image_pull_secrets, "list[V1LocalObjectReference]") or []
    image_pull_secret = cloud.spec.solr_image.image_pull_secret
    if image_pull_secret:
        secrets.append(client.V1LocalObjectReference(name=image_pull_secret))
    if secrets:
        pod_spec.image_pull_secrets = secrets


POD_OVERRIDES = [
    _service_account,
    _affinity,
    _resources,
    _pod_security_context,
    _lifecycle,
    _tolerations,
    _node_selector,
    _startup_probe,
    _liveness_probe,
    _readiness_probe,
    _priority_class,
    _init_containers,
    _sidecar_containers,
    _volumes,
    _image_pull_secrets,
]


def apply_pod_overrides(stateful_set, cloud):
    """Return a copy of ``stateful_set`` with the cloud's pod options applied."""
    stateful_set = copy.deepcopy(stateful_set)
    pod_spec = stateful_set.spec.template.spec
    container = solr_container(pod_spec)
    options = cloud.spec.custom_solr_kube_options.pod_options
    for step in POD_OVERRIDES:
        step(pod_spec, container, options, cloud)
    return stateful_set
