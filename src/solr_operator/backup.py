"""Backup repository bindings: volumes, solr.xml fragments and shared libs."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from kubernetes import client

from . import crd
from .exceptions import ConfigurationError, UnknownRepositoryError
from .k8s import deserialize

logger = logging.getLogger(__name__)

BACKUP_RESTORE_DIR = f"{crd.SOLR_HOME}/backup-restore"
GCS_CREDENTIAL_FILE = "service-account-key.json"
S3_CREDENTIALS_FILE = "credentials"
DIST_LIB = "$SOLR_INSTALL/dist"


@dataclass(frozen=True)
class RepositoryBinding:
    """Everything the StatefulSet and solr.xml need for one repository."""

    name: str
    fragment: str
    libs: tuple = ()
    volume: Optional[client.V1Volume] = None
    volume_mount: Optional[client.V1VolumeMount] = None
    env_vars: tuple = ()
    # Solr owns the files, so the mount needs a chown before start
    managed: bool = False


@dataclass(frozen=True)
class BackupConfig:
    """Aggregated bindings for all repositories of a cloud."""

    bindings: list = field(default_factory=list)
    solr_xml_section: str = ""

    @property
    def volumes(self):
        return [b.volume for b in self.bindings if b.volume is not None]

    @property
    def volume_mounts(self):
        return [b.volume_mount for b in self.bindings if b.volume_mount is not None]

    @property
    def env_vars(self):
        return [e for b in self.bindings for e in b.env_vars]

    @property
    def managed_mounts(self):
        return [b.volume_mount for b in self.bindings if b.managed]

    def allow_paths(self):
        return sorted(m.mount_path for m in self.managed_mounts)


def repo_volume_name(repo):
    return f"backup-repository-{repo.name}"


def repo_mount_path(repo):
    return f"{BACKUP_RESTORE_DIR}/{repo.name}"


def _gcs_binding(repo):
    gcs = repo.gcs
    mount_path = f"{repo_mount_path(repo)}/gcscredential"
    volume = client.V1Volume(
        name=repo_volume_name(repo),
        secret=client.V1SecretVolumeSource(
            secret_name=gcs.gcs_credential_secret.name,
            items=[client.V1KeyToPath(key=gcs.gcs_credential_secret.key, path=GCS_CREDENTIAL_FILE)],
        ),
    )
    fragment = (
        f'<repository name="{repo.name}" class="org.apache.solr.gcs.GCSBackupRepository">'
        f'<str name="gcsBucket">{gcs.bucket}</str>'
        f'<str name="gcsCredentialPath">{mount_path}/{GCS_CREDENTIAL_FILE}</str>'
        f'<str name="location">{gcs.base_location or "/"}</str>'
        "</repository>"
    )
    return RepositoryBinding(
        name=repo.name,
        fragment=fragment,
        libs=(DIST_LIB, "$SOLR_INSTALL/contrib/gcs-repository/lib"),
        volume=volume,
        volume_mount=client.V1VolumeMount(
            name=repo_volume_name(repo), mount_path=mount_path, read_only=True
        ),
    )


def _s3_env(name, selector):
    return client.V1EnvVar(
        name=name,
        value_from=client.V1EnvVarSource(
            secret_key_ref=client.V1SecretKeySelector(name=selector.name, key=selector.key)
        ),
    )


def _s3_binding(repo):
    s3 = repo.s3
    options = [
        f'<str name="s3.bucket.name">{s3.bucket}</str>',
        f'<str name="s3.region">{s3.region}</str>',
    ]
    if s3.endpoint:
        options.append(f'<str name="s3.endpoint">{s3.endpoint}</str>')
    if s3.proxy_url:
        options.append(f'<str name="s3.proxy.url">{s3.proxy_url}</str>')
    if s3.base_location:
        options.append(f'<str name="location">{s3.base_location}</str>')
    fragment = (
        f'<repository name="{repo.name}" class="org.apache.solr.s3.S3BackupRepository">'
        + "".join(options)
        + "</repository>"
    )

    env_vars = []
    volume = None
    volume_mount = None
    creds = s3.credentials
    if creds is not None:
        for env_name, selector in (
            ("AWS_ACCESS_KEY_ID", creds.access_key_id_secret),
            ("AWS_SECRET_ACCESS_KEY", creds.secret_access_key_secret),
            ("AWS_SESSION_TOKEN", creds.session_token_secret),
        ):
            if selector is not None:
                env_vars.append(_s3_env(env_name, selector))
        if creds.credentials_file_secret is not None:
            mount_path = f"{repo_mount_path(repo)}/s3credential"
            volume = client.V1Volume(
                name=repo_volume_name(repo),
                secret=client.V1SecretVolumeSource(
                    secret_name=creds.credentials_file_secret.name,
                    items=[
                        client.V1KeyToPath(
                            key=creds.credentials_file_secret.key, path=S3_CREDENTIALS_FILE
                        )
                    ],
                ),
            )
            volume_mount = client.V1VolumeMount(
                name=repo_volume_name(repo), mount_path=mount_path, read_only=True
            )
            env_vars.append(
                client.V1EnvVar(
                    name="AWS_SHARED_CREDENTIALS_FILE",
                    value=f"{mount_path}/{S3_CREDENTIALS_FILE}",
                )
            )

    return RepositoryBinding(
        name=repo.name,
        fragment=fragment,
        libs=(DIST_LIB, "$SOLR_INSTALL/contrib/s3-repository/lib"),
        volume=volume,
        volume_mount=volume_mount,
        env_vars=tuple(env_vars),
    )


def _volume_binding(repo):
    volume = deserialize({**repo.volume.source, "name": repo_volume_name(repo)}, "V1Volume")
    mount_path = repo_mount_path(repo)
    if repo.volume.directory:
        mount_path = f"{mount_path}/{repo.volume.directory.strip('/')}"
    fragment = (
        f'<repository name="{repo.name}" '
        'class="org.apache.solr.core.backup.repository.LocalFileSystemRepository"/>'
    )
    return RepositoryBinding(
        name=repo.name,
        fragment=fragment,
        volume=volume,
        volume_mount=client.V1VolumeMount(name=repo_volume_name(repo), mount_path=mount_path),
        managed=True,
    )


REPOSITORY_BINDERS = {
    "gcs": _gcs_binding,
    "s3": _s3_binding,
    "volume": _volume_binding,
}


def bind_repository(repo):
    variants = repo.variants()
    if len(variants) != 1:
        raise UnknownRepositoryError(
            f"Backup repository {repo.name} must set exactly one of "
            f"{', '.join(REPOSITORY_BINDERS)}, found {variants or 'none'}",
            "Remove the extra repository types or add a supported one",
        )
    return REPOSITORY_BINDERS[variants[0]](repo)


def solr_xml_section(bindings):
    """The sharedLib and <backup> section of solr.xml.

    Libraries and fragments are sorted so declaration order does not change
    the generated document.
    """
    if not bindings:
        return ""
    libs = sorted({lib for b in bindings for lib in b.libs})
    fragments = sorted(b.fragment for b in bindings)

    lib_xml = f'<str name="sharedLib">{",".join(libs)}</str>' if libs else ""
    return "{}\n  <backup>\n    {}\n  </backup>".format(lib_xml, "\n    ".join(fragments))


def resolve_backup_repositories(cloud):
    seen = set()
    for repo in cloud.spec.backup_repositories:
        if repo.name in seen:
            raise ConfigurationError(
                f"Backup repository names of SolrCloud {cloud.name} must be unique, "
                f"{repo.name} is used more than once",
                "Rename or remove the duplicate repository",
            )
        seen.add(repo.name)

    bindings = [bind_repository(repo) for repo in cloud.spec.backup_repositories]
    if bindings:
        logger.debug(
            f"SolrCloud {cloud.name} backup repositories: {', '.join(b.name for b in bindings)}"
        )
    return BackupConfig(bindings=bindings, solr_xml_section=solr_xml_section(bindings))
