"""Tests for backup repository bindings."""

import pytest

from solr_operator.backup import bind_repository, resolve_backup_repositories, solr_xml_section
from solr_operator.exceptions import ConfigurationError, UnknownRepositoryError
from solr_operator.models import BackupRepository

GCS_REPO = {
    "name": "gcs-backups",
    "gcs": {
        "bucket": "solr-bucket",
        "gcsCredentialSecret": {"name": "gcs-creds", "key": "sa.json"},
    },
}
S3_REPO = {
    "name": "s3-backups",
    "s3": {
        "region": "us-east-1",
        "bucket": "solr-s3",
        "endpoint": "http://minio:9000",
        "credentials": {
            "accessKeyIdSecret": {"name": "aws", "key": "id"},
            "secretAccessKeySecret": {"name": "aws", "key": "secret"},
            "credentialsFileSecret": {"name": "aws-file", "key": "credentials"},
        },
    },
}
VOLUME_REPO = {
    "name": "local",
    "volume": {"source": {"persistentVolumeClaim": {"claimName": "backups"}}, "directory": "solr"},
}


def test_gcs_binding():
    """Test the GCS credential volume and repository fragment."""
    binding = bind_repository(BackupRepository.model_validate(GCS_REPO))

    assert binding.volume.name == "backup-repository-gcs-backups"
    assert binding.volume.secret.secret_name == "gcs-creds"
    assert binding.volume_mount.mount_path == "/var/solr/data/backup-restore/gcs-backups/gcscredential"
    assert 'class="org.apache.solr.gcs.GCSBackupRepository"' in binding.fragment
    assert '<str name="gcsBucket">solr-bucket</str>' in binding.fragment
    assert '<str name="location">/</str>' in binding.fragment
    assert "$SOLR_INSTALL/contrib/gcs-repository/lib" in binding.libs
    assert not binding.managed


def test_s3_binding():
    """Test the S3 env vars, credentials file mount and fragment."""
    binding = bind_repository(BackupRepository.model_validate(S3_REPO))
    env = {e.name: e for e in binding.env_vars}

    assert env["AWS_ACCESS_KEY_ID"].value_from.secret_key_ref.key == "id"
    assert env["AWS_SECRET_ACCESS_KEY"].value_from.secret_key_ref.key == "secret"
    assert "AWS_SESSION_TOKEN" not in env
    assert env["AWS_SHARED_CREDENTIALS_FILE"].value == (
        "/var/solr/data/backup-restore/s3-backups/s3credential/credentials"
    )
    assert binding.volume.secret.secret_name == "aws-file"
    assert '<str name="s3.endpoint">http://minio:9000</str>' in binding.fragment
    assert "s3.proxy.url" not in binding.fragment


def test_s3_binding_without_credentials_has_no_volume():
    """Test that S3 without a credentials file needs no volume."""
    repo = BackupRepository.model_validate(
        {"name": "s3", "s3": {"region": "eu-west-1", "bucket": "b"}}
    )

    binding = bind_repository(repo)

    assert binding.volume is None
    assert binding.env_vars == ()


def test_volume_binding_is_managed():
    """Test that local volumes are owned by Solr and use the local repository."""
    binding = bind_repository(BackupRepository.model_validate(VOLUME_REPO))

    assert binding.managed
    assert binding.volume.name == "backup-repository-local"
    assert binding.volume.persistent_volume_claim.claim_name == "backups"
    assert binding.volume_mount.mount_path == "/var/solr/data/backup-restore/local/solr"
    assert "LocalFileSystemRepository" in binding.fragment
    assert binding.libs == ()


def test_repository_without_variant_is_rejected():
    """Test that a repository must declare a provider."""
    with pytest.raises(UnknownRepositoryError):
        bind_repository(BackupRepository(name="empty"))


def test_repository_with_two_variants_is_rejected():
    """Test that a repository may only declare one provider."""
    repo = BackupRepository.model_validate({**GCS_REPO, "s3": S3_REPO["s3"]})

    with pytest.raises(UnknownRepositoryError, match="exactly one"):
        bind_repository(repo)


def test_unknown_repository_is_a_configuration_error():
    """Test that the error is reported as a validation error."""
    assert issubclass(UnknownRepositoryError, ValueError)


def test_solr_xml_section_deduplicates_libs():
    """Test that shared libs are unique and sorted."""
    bindings = [
        bind_repository(BackupRepository.model_validate(r)) for r in (S3_REPO, GCS_REPO)
    ]

    section = solr_xml_section(bindings)

    assert section.startswith(
        '<str name="sharedLib">$SOLR_INSTALL/contrib/gcs-repository/lib,'
        "$SOLR_INSTALL/contrib/s3-repository/lib,$SOLR_INSTALL/dist</str>"
    )
    assert section.index('name="gcs-backups"') < section.index('name="s3-backups"')


def test_no_repositories_no_section(make_cloud):
    """Test that clouds without backups get no solr.xml section."""
    backup = resolve_backup_repositories(make_cloud())

    assert backup.solr_xml_section == ""
    assert backup.volumes == []
    assert backup.allow_paths() == []


def test_allow_paths_cover_managed_volumes(make_cloud):
    """Test that only managed volumes are listed for solr.allowPaths."""
    cloud = make_cloud({"backupRepositories": [GCS_REPO, VOLUME_REPO]})

    backup = resolve_backup_repositories(cloud)

    assert backup.allow_paths() == ["/var/solr/data/backup-restore/local/solr"]
    assert len(backup.volumes) == 2


def test_duplicate_repository_names_are_rejected(make_cloud):
    """Test that two repositories with the same name are a configuration error."""
    cloud = make_cloud({"backupRepositories": [GCS_REPO, {**VOLUME_REPO, "name": "gcs-backups"}]})

    with pytest.raises(ConfigurationError, match="gcs-backups is used more than once"):
        resolve_backup_repositories(cloud)
