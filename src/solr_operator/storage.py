"""Data volume for Solr: a claim template or an ephemeral volume."""

import copy
import logging

from kubernetes import client

from . import crd
from .k8s import deserialize
from .labels import normalize

logger = logging.getLogger(__name__)


def create_pvc_template(cloud):
    """Create the volume claim template for persistent data storage."""
    template = cloud.spec.data_storage.persistent.pvc_template

    name = template.metadata.name or crd.DATA_VOLUME
    spec = copy.deepcopy(template.spec)
    if not spec.get("accessModes"):
        spec["accessModes"] = ["ReadWriteOnce"]
    if not spec.get("volumeMode"):
        spec["volumeMode"] = "Filesystem"

    # Internal labels identify the claims of this cloud when cleaning up
    internal_labels = {
        crd.PVC_TECHNOLOGY_LABEL: crd.SOLR_TECHNOLOGY,
        crd.PVC_STORAGE_LABEL: crd.PVC_DATA_STORAGE,
        crd.PVC_INSTANCE_LABEL: cloud.name,
    }
    labels, annotations = normalize(
        internal_labels, None, template.metadata.labels, template.metadata.annotations
    )

    return client.V1PersistentVolumeClaim(
        metadata=client.V1ObjectMeta(name=name, labels=labels, annotations=annotations),
        spec=deserialize(spec, "V1PersistentVolumeClaimSpec"),
    )


def create_ephemeral_volume(cloud):
    """Create the pod volume used for data when storage is not persistent."""
    ephemeral = cloud.spec.data_storage.ephemeral
    volume = client.V1Volume(name=crd.DATA_VOLUME)

    if ephemeral is not None and ephemeral.host_path and ephemeral.empty_dir is None:
        volume.host_path = deserialize(ephemeral.host_path, "V1HostPathVolumeSource")
    elif ephemeral is not None and ephemeral.empty_dir:
        volume.empty_dir = deserialize(ephemeral.empty_dir, "V1EmptyDirVolumeSource")
    else:
        volume.empty_dir = client.V1EmptyDirVolumeSource()

    return volume


def resolve_data_storage(cloud):
    """Resolve storage options.

    Returns:
        Tuple of (volume_claim_templates, pod_volumes, data_volume_name)
    """
    if cloud.uses_persistent_storage():
        pvc = create_pvc_template(cloud)
        logger.debug(f"SolrCloud {cloud.name} uses persistent storage claim {pvc.metadata.name}")
        return [pvc], [], pvc.metadata.name
    return [], [create_ephemeral_volume(cloud)], crd.DATA_VOLUME
