"""Tests for user pod options."""

from kubernetes import client

from conftest import to_json
from solr_operator.overrides import (
    STARTUP_PROBE_FAILURE_THRESHOLD,
    STARTUP_PROBE_TIMEOUT,
    apply_pod_overrides,
    customize_probe,
)
from solr_operator.templates import generate_stateful_set
from solr_operator.tls import solr_container


def pod_spec_for(make_cloud, zk_status, pod_options, **spec):
    spec["customSolrKubeOptions"] = {"podOptions": pod_options}
    cloud = make_cloud(spec)
    return generate_stateful_set(cloud, zk_status).spec.template.spec


def test_customize_probe_keeps_unset_fields():
    """Test that zero values in the override keep the base settings."""
    base = client.V1Probe(
        initial_delay_seconds=20,
        timeout_seconds=1,
        period_seconds=10,
        http_get=client.V1HTTPGetAction(path="/solr/admin/info/system", port=8983),
    )

    probe = customize_probe(base, {"periodSeconds": 30, "initialDelaySeconds": 0})

    assert probe.period_seconds == 30
    assert probe.initial_delay_seconds == 20
    assert probe.http_get.path == "/solr/admin/info/system"
    assert base.period_seconds == 10


def test_customize_probe_replaces_handler():
    """Test that a user handler replaces the generated one."""
    base = client.V1Probe(http_get=client.V1HTTPGetAction(path="/solr/admin/info/system", port=8983))

    probe = customize_probe(base, {"exec": {"command": ["true"]}})

    assert probe.http_get is None
    assert probe._exec.command == ["true"]


def test_no_options_no_change(cloud, zk_status):
    """Test that unset options leave the StatefulSet alone."""
    stateful_set = generate_stateful_set(cloud, zk_status)

    assert to_json(apply_pod_overrides(stateful_set, cloud)) == to_json(stateful_set)


def test_scheduling_options(make_cloud, zk_status):
    """Test affinity, tolerations, node selector and priority class."""
    pod_spec = pod_spec_for(
        make_cloud,
        zk_status,
        {
            "affinity": {
                "nodeAffinity": {
                    "requiredDuringSchedulingIgnoredDuringExecution": {
                        "nodeSelectorTerms": [
                            {"matchExpressions": [{"key": "zone", "operator": "In", "values": ["a"]}]}
                        ]
                    }
                }
            },
            "tolerations": [{"key": "dedicated", "operator": "Equal", "value": "solr", "effect": "NoSchedule"}],
            "nodeSelector": {"disk": "ssd"},
            "priorityClassName": "high",
            "serviceAccountName": "solr-sa",
        },
    )

    assert pod_spec.affinity.node_affinity is not None
    assert pod_spec.tolerations[0].key == "dedicated"
    assert pod_spec.node_selector == {"disk": "ssd"}
    assert pod_spec.priority_class_name == "high"
    assert pod_spec.service_account_name == "solr-sa"


def test_resources_and_security_context(make_cloud, zk_status):
    """Test container resources and the pod security context."""
    pod_spec = pod_spec_for(
        make_cloud,
        zk_status,
        {
            "resources": {"requests": {"cpu": "500m", "memory": "2Gi"}},
            "podSecurityContext": {"runAsUser": 1000, "fsGroup": 1000},
        },
    )

    container = solr_container(pod_spec)
    assert container.resources.requests == {"cpu": "500m", "memory": "2Gi"}
    assert pod_spec.security_context.fs_group == 1000


def test_startup_probe_starts_from_liveness(make_cloud, zk_status):
    """Test that the startup probe copies liveness with longer limits."""
    pod_spec = pod_spec_for(make_cloud, zk_status, {"startupProbe": {"periodSeconds": 20}})
    container = solr_container(pod_spec)

    startup = container.startup_probe
    assert startup.timeout_seconds == STARTUP_PROBE_TIMEOUT
    assert startup.failure_threshold == STARTUP_PROBE_FAILURE_THRESHOLD
    assert startup.period_seconds == 20
    assert startup.http_get.path == container.liveness_probe.http_get.path
    assert container.liveness_probe.timeout_seconds == 1


def test_probe_overrides_apply_after_tls(make_cloud, zk_status, tls_spec):
    """Test that a custom readiness path survives secured probes."""
    pod_spec = pod_spec_for(
        make_cloud,
        zk_status,
        {"readinessProbe": {"httpGet": {"path": "/solr/admin/health", "port": 8983, "scheme": "HTTPS"}}},
        solrTLS={**tls_spec, "clientAuth": "Need"},
    )
    container = solr_container(pod_spec)

    assert container.readiness_probe.http_get.path == "/solr/admin/health"
    assert container.readiness_probe._exec is None
    assert container.liveness_probe._exec is not None


def test_extra_containers_are_appended(make_cloud, zk_status):
    """Test that user init and sidecar containers come after the generated ones."""
    pod_spec = pod_spec_for(
        make_cloud,
        zk_status,
        {
            "initContainers": [{"name": "warmup", "image": "busybox"}],
            "sidecarContainers": [{"name": "exporter", "image": "solr-exporter"}],
        },
    )

    assert [c.name for c in pod_spec.init_containers] == ["cp-solr-xml", "warmup"]
    assert [c.name for c in pod_spec.containers] == ["solrcloud-node", "exporter"]


def test_additional_volumes(make_cloud, zk_status):
    """Test that volumes are only mounted into Solr when asked to."""
    pod_spec = pod_spec_for(
        make_cloud,
        zk_status,
        {
            "volumes": [
                {
                    "name": "extra-config",
                    "source": {"configMap": {"name": "extra"}},
                    "defaultContainerMount": {"mountPath": "/opt/extra"},
                },
                {"name": "scratch", "source": {"emptyDir": {}}},
            ]
        },
    )
    mounts = {m.name: m.mount_path for m in solr_container(pod_spec).volume_mounts}
    volumes = {v.name: v for v in pod_spec.volumes}

    assert volumes["extra-config"].config_map.name == "extra"
    assert "scratch" in volumes
    assert mounts["extra-config"] == "/opt/extra"
    assert "scratch" not in mounts


def test_image_pull_secrets(make_cloud, zk_status):
    """Test that the solr image pull secret joins the user's list."""
    pod_spec = pod_spec_for(
        make_cloud,
        zk_status,
        {"imagePullSecrets": [{"name": "registry-a"}]},
        solrImage={"imagePullSecret": "registry-b"},
    )

    assert [s.name for s in pod_spec.image_pull_secrets] == ["registry-a", "registry-b"]


def test_lifecycle_override(make_cloud, zk_status):
    """Test that a user lifecycle replaces the generated hooks."""
    pod_spec = pod_spec_for(
        make_cloud, zk_status, {"lifecycle": {"preStop": {"exec": {"command": ["sleep", "5"]}}}}
    )
    lifecycle = solr_container(pod_spec).lifecycle

    assert lifecycle.pre_stop._exec.command == ["sleep", "5"]
    assert lifecycle.post_start is None
