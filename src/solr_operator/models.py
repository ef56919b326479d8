"""Data models for the SolrCloud resource, its status and persisted state."""

from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Optional

from kubernetes.client import V1Secret
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from . import crd


def normalize_chroot(value: Optional[str]) -> str:
    """Trim a ZooKeeper chroot and make sure it is rooted."""
    chroot = (value or "").strip()
    if not chroot:
        return crd.DEFAULT_CHROOT
    if not chroot.startswith("/"):
        chroot = "/" + chroot
    return chroot


Chroot = Annotated[str, BeforeValidator(normalize_chroot)]


class CrdModel(BaseModel):
    """Base for models read from the SolrCloud custom resource."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class ContainerImage(CrdModel):
    """Container image coordinates."""

    repository: str
    tag: str
    pull_policy: str = crd.DEFAULT_PULL_POLICY
    image_pull_secret: str = ""

    def to_image_name(self) -> str:
        return f"{self.repository}:{self.tag}"


class SolrImage(ContainerImage):
    repository: str = crd.DEFAULT_SOLR_REPOSITORY
    tag: str = crd.DEFAULT_SOLR_TAG


class BusyBoxImage(ContainerImage):
    repository: str = crd.DEFAULT_BUSYBOX_REPOSITORY
    tag: str = crd.DEFAULT_BUSYBOX_TAG


class SecretKeySelector(CrdModel):
    """Reference to a single key of a secret."""

    name: str
    key: str


# Storage


class PvcTemplateMetadata(CrdModel):
    name: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)


class PvcTemplate(CrdModel):
    metadata: PvcTemplateMetadata = Field(default_factory=PvcTemplateMetadata)
    spec: dict[str, Any] = Field(default_factory=dict)


class PersistentStorage(CrdModel):
    reclaim_policy: Literal["Retain", "Delete"] = "Retain"
    pvc_template: PvcTemplate = Field(default_factory=PvcTemplate)


class EphemeralStorage(CrdModel):
    host_path: Optional[dict[str, Any]] = None
    empty_dir: Optional[dict[str, Any]] = None


class DataStorage(CrdModel):
    persistent: Optional[PersistentStorage] = None
    ephemeral: Optional[EphemeralStorage] = None


# Addressability


class ExternalAddressability(CrdModel):
    """How the cloud and its nodes are reached from outside Kubernetes."""

    method: Literal["Ingress", "ExternalDNS"]
    domain_name: str = ""
    additional_domain_names: list[str] = Field(default_factory=list)
    use_external_address: bool = False
    hide_common: bool = False
    hide_nodes: bool = False
    node_port_override: int = 0
    ingress_tls_termination_secret: str = Field(
        default="", alias="ingressTLSTerminationSecret"
    )

    def all_domains(self) -> list[str]:
        """Primary domain first, then the additional ones, skipping blanks."""
        return [
            d.strip()
            for d in [self.domain_name, *self.additional_domain_names]
            if d and d.strip()
        ]


class SolrAddressability(CrdModel):
    pod_port: int = crd.DEFAULT_POD_PORT
    common_service_port: int = crd.DEFAULT_COMMON_SERVICE_PORT
    kube_domain: str = ""
    external: Optional[ExternalAddressability] = None


class UpdateStrategy(CrdModel):
    method: Literal["Managed", "StatefulSet", "Manual"] = "Managed"


# ZooKeeper


class ZookeeperACL(CrdModel):
    secret: str
    username_key: str
    password_key: str


class ZookeeperConnectionInfo(CrdModel):
    internal_connection_string: str = ""
    external_connection_string: str = ""
    chroot: Chroot = crd.DEFAULT_CHROOT
    acl: Optional[ZookeeperACL] = None
    read_only_acl: Optional[ZookeeperACL] = None

    def connection_string(self) -> str:
        return self.internal_connection_string + self.chroot


class ProvidedZookeeper(CrdModel):
    """A ZooKeeper ensemble managed by the cooperating zookeeper operator."""

    chroot: Chroot = crd.DEFAULT_CHROOT
    replicas: Optional[int] = None
    acl: Optional[ZookeeperACL] = None
    read_only_acl: Optional[ZookeeperACL] = None


class ZookeeperRef(CrdModel):
    connection_info: Optional[ZookeeperConnectionInfo] = None
    provided: Optional[ProvidedZookeeper] = None

    def get_acls(self) -> tuple[Optional[ZookeeperACL], Optional[ZookeeperACL]]:
        """Return the (all, read-only) ACLs from whichever reference is set."""
        if self.connection_info is not None:
            return self.connection_info.acl, self.connection_info.read_only_acl
        if self.provided is not None:
            return self.provided.acl, self.provided.read_only_acl
        return None, None

    def chroot(self) -> str:
        if self.connection_info is not None:
            return self.connection_info.chroot
        if self.provided is not None:
            return self.provided.chroot
        return crd.DEFAULT_CHROOT


# Security and TLS


class SolrSecurityOptions(CrdModel):
    authentication_type: Literal["Basic"] = "Basic"
    basic_auth_secret: str = ""
    probes_require_auth: bool = False


class MountedTLSDirectory(CrdModel):
    """TLS files mounted into the pod by something other than the operator."""

    path: str
    keystore_file: str = "keystore.p12"
    truststore_file: str = "truststore.p12"
    keystore_password_file: str = "keystore-password"
    truststore_password_file: str = ""


class SolrTLSOptions(CrdModel):
    pkcs12_secret: Optional[SecretKeySelector] = Field(default=None, alias="pkcs12Secret")
    key_store_password_secret: Optional[SecretKeySelector] = None
    trust_store_secret: Optional[SecretKeySelector] = None
    trust_store_password_secret: Optional[SecretKeySelector] = None
    mounted_tls_dir: Optional[MountedTLSDirectory] = Field(default=None, alias="mountedTLSDir")
    client_auth: Literal["None", "Want", "Need"] = "None"
    verify_client_hostname: bool = False
    check_peer_name: bool = False
    restart_on_tls_secret_update: bool = Field(default=False, alias="restartOnTLSSecretUpdate")


# Backup repositories


class GcsRepository(CrdModel):
    bucket: str
    gcs_credential_secret: SecretKeySelector
    base_location: str = ""


class S3Credentials(CrdModel):
    access_key_id_secret: Optional[SecretKeySelector] = None
    secret_access_key_secret: Optional[SecretKeySelector] = None
    session_token_secret: Optional[SecretKeySelector] = None
    credentials_file_secret: Optional[SecretKeySelector] = None


class S3Repository(CrdModel):
    region: str
    bucket: str
    endpoint: str = ""
    proxy_url: str = ""
    base_location: str = ""
    credentials: Optional[S3Credentials] = None


class VolumeRepository(CrdModel):
    source: dict[str, Any]
    directory: str = ""


class BackupRepository(CrdModel):
    """A named backup repository; exactly one provider block is expected."""

    name: str
    gcs: Optional[GcsRepository] = None
    s3: Optional[S3Repository] = None
    volume: Optional[VolumeRepository] = None

    def variants(self) -> list[str]:
        return [v for v in ("gcs", "s3", "volume") if getattr(self, v) is not None]


# Custom kube options


class KubeOptions(CrdModel):
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)


class AdditionalVolume(CrdModel):
    name: str
    source: dict[str, Any]
    default_container_mount: Optional[dict[str, Any]] = None


class PodOptions(KubeOptions):
    resources: dict[str, Any] = Field(default_factory=dict)
    affinity: Optional[dict[str, Any]] = None
    tolerations: Optional[list[dict[str, Any]]] = None
    node_selector: Optional[dict[str, str]] = None
    pod_security_context: Optional[dict[str, Any]] = None
    lifecycle: Optional[dict[str, Any]] = None
    liveness_probe: Optional[dict[str, Any]] = None
    readiness_probe: Optional[dict[str, Any]] = None
    startup_probe: Optional[dict[str, Any]] = None
    volumes: list[AdditionalVolume] = Field(default_factory=list)
    env_variables: list[dict[str, Any]] = Field(default_factory=list)
    init_containers: list[dict[str, Any]] = Field(default_factory=list)
    sidecar_containers: list[dict[str, Any]] = Field(default_factory=list)
    image_pull_secrets: list[dict[str, Any]] = Field(default_factory=list)
    service_account_name: str = ""
    priority_class_name: str = ""
    termination_grace_period_seconds: Optional[int] = None


class StatefulSetOptions(KubeOptions):
    pod_management_policy: str = ""


class ConfigMapOptions(KubeOptions):
    provided_config_map: str = ""


class IngressOptions(KubeOptions):
    ingress_class_name: str = ""


class CustomSolrKubeOptions(CrdModel):
    pod_options: PodOptions = Field(default_factory=PodOptions)
    stateful_set_options: StatefulSetOptions = Field(default_factory=StatefulSetOptions)
    config_map_options: ConfigMapOptions = Field(default_factory=ConfigMapOptions)
    common_service_options: KubeOptions = Field(default_factory=KubeOptions)
    headless_service_options: KubeOptions = Field(default_factory=KubeOptions)
    node_service_options: KubeOptions = Field(default_factory=KubeOptions)
    ingress_options: IngressOptions = Field(default_factory=IngressOptions)


# SolrCloud


class SolrCloudSpec(CrdModel):
    replicas: int = crd.DEFAULT_REPLICAS
    solr_image: SolrImage = Field(default_factory=SolrImage)
    busy_box_image: BusyBoxImage = Field(default_factory=BusyBoxImage)
    solr_java_mem: str = ""
    solr_opts: str = ""
    solr_log_level: str = crd.DEFAULT_LOG_LEVEL
    solr_gc_tune: str = Field(default="", alias="solrGCTune")
    data_storage: DataStorage = Field(default_factory=DataStorage)
    solr_addressability: SolrAddressability = Field(default_factory=SolrAddressability)
    update_strategy: UpdateStrategy = Field(default_factory=UpdateStrategy)
    solr_security: Optional[SolrSecurityOptions] = None
    solr_tls: Optional[SolrTLSOptions] = Field(default=None, alias="solrTLS")
    backup_repositories: list[BackupRepository] = Field(default_factory=list)
    zookeeper_ref: ZookeeperRef = Field(default_factory=ZookeeperRef)
    custom_solr_kube_options: CustomSolrKubeOptions = Field(
        default_factory=CustomSolrKubeOptions
    )

    @field_validator("replicas")
    @classmethod
    def validate_replicas(cls, v: int) -> int:
        """Validate replicas is not negative."""
        if v < 0:
            raise ValueError("replicas cannot be negative")
        return v


class ObjectMeta(CrdModel):
    name: str
    namespace: str = "default"
    uid: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)


class SolrCloud(CrdModel):
    """A SolrCloud custom resource, with the names of everything it owns."""

    metadata: ObjectMeta
    spec: SolrCloudSpec = Field(default_factory=SolrCloudSpec)

    @classmethod
    def from_resource(cls, name, namespace, spec, meta=None) -> "SolrCloud":
        """Build from the pieces a kopf handler receives."""
        meta = meta or {}
        return cls.model_validate(
            {
                "metadata": {
                    "name": name,
                    "namespace": namespace,
                    "uid": meta.get("uid") or "",
                    "labels": dict(meta.get("labels") or {}),
                    "annotations": dict(meta.get("annotations") or {}),
                },
                "spec": dict(spec or {}),
            }
        )

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    def uses_persistent_storage(self) -> bool:
        return self.spec.data_storage.persistent is not None

    def stateful_set_name(self) -> str:
        return f"{self.name}-solrcloud"

    def common_service_name(self) -> str:
        return f"{self.name}-solrcloud-common"

    def headless_service_name(self) -> str:
        return f"{self.name}-solrcloud-headless"

    def common_ingress_name(self) -> str:
        return f"{self.name}-solrcloud-common"

    def config_map_name(self) -> str:
        return f"{self.name}-solrcloud-configmap"

    def basic_auth_secret_name(self) -> str:
        security = self.spec.solr_security
        if security is not None and security.basic_auth_secret:
            return security.basic_auth_secret
        return f"{self.name}-solrcloud-basic-auth"

    def security_bootstrap_secret_name(self) -> str:
        return f"{self.name}-solrcloud-security-bootstrap"

    def node_names(self) -> list[str]:
        return [f"{self.stateful_set_name()}-{i}" for i in range(self.spec.replicas)]

    def url_scheme(self) -> str:
        return "https" if self.spec.solr_tls is not None else "http"

    def shared_labels(self) -> dict[str, str]:
        """Labels identifying this cloud; also the StatefulSet selector."""
        return {
            crd.SOLR_CLOUD_LABEL: self.name,
            crd.TECHNOLOGY_LABEL: crd.SOLR_TECHNOLOGY,
        }


class SolrCloudStatus(CrdModel):
    zookeeper_connection_info: Optional[ZookeeperConnectionInfo] = None


@dataclass(frozen=True)
class ExistingState:
    """Snapshot of already persisted state that the engine is allowed to see.

    secrets: existing secrets in the cloud's namespace, keyed by name
    provided_config_files: file name -> md5 for files found in the
        user-provided ConfigMap (``solr.xml``, ``log4j2.xml``)
    tls_cert_md5: digest of the current TLS certificate, if tracked
    host_name_ips: extra host name -> IP aliases for the pods
    """

    secrets: dict[str, V1Secret] = field(default_factory=dict)
    provided_config_files: dict[str, str] = field(default_factory=dict)
    tls_cert_md5: str = ""
    host_name_ips: dict[str, str] = field(default_factory=dict)
