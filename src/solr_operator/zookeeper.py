"""ZooKeeper connection settings for Solr pods."""

import logging
from dataclasses import dataclass, field

from kubernetes import client

from . import crd
from .exceptions import ConfigurationError, ZookeeperNotReadyError
from .tls import url_scheme_cluster_prop_command

logger = logging.getLogger(__name__)

# Safe to run repeatedly: mkroot only runs when the chroot is missing
CHROOT_SETUP_COMMAND = (
    "solr zk ls ${ZK_CHROOT} -z ${ZK_SERVER} || solr zk mkroot ${ZK_CHROOT} -z ${ZK_SERVER}"
)
ZK_CREDS_AND_ACLS_OPT = "$(SOLR_ZK_CREDS_AND_ACLS)"
ZK_ACL_PROVIDERS = (
    "-DzkACLProvider=org.apache.solr.common.cloud.VMParamsAllAndReadonlyDigestZkACLProvider "
    "-DzkCredentialsProvider=org.apache.solr.common.cloud.VMParamsSingleSetCredentialsDigestZkCredentialsProvider"
)


@dataclass(frozen=True)
class ZkConnection:
    """Resolved ZooKeeper connection for one SolrCloud."""

    server: str
    chroot: str
    env_vars: list = field(default_factory=list)
    solr_opts: list = field(default_factory=list)

    @property
    def connection_string(self) -> str:
        return self.server + self.chroot

    @property
    def has_chroot(self) -> bool:
        return len(self.chroot) > 1


def _secret_env(name, secret, key):
    return client.V1EnvVar(
        name=name,
        value_from=client.V1EnvVarSource(
            secret_key_ref=client.V1SecretKeySelector(name=secret, key=key, optional=False)
        ),
    )


def create_acl_env_vars(all_acl, read_only_acl):
    """Env vars that pass ZooKeeper digest ACL credentials to Solr.

    Returns:
        Tuple of (has_acls, env_vars)
    """
    if all_acl is None and read_only_acl is None:
        return False, []

    env_vars = []
    digests = []
    if all_acl is not None:
        env_vars.append(_secret_env("ZK_ALL_ACL_USERNAME", all_acl.secret, all_acl.username_key))
        env_vars.append(_secret_env("ZK_ALL_ACL_PASSWORD", all_acl.secret, all_acl.password_key))
        digests.append("-DzkDigestUsername=$(ZK_ALL_ACL_USERNAME)")
        digests.append("-DzkDigestPassword=$(ZK_ALL_ACL_PASSWORD)")
    if read_only_acl is not None:
        env_vars.append(
            _secret_env("ZK_READ_ACL_USERNAME", read_only_acl.secret, read_only_acl.username_key)
        )
        env_vars.append(
            _secret_env("ZK_READ_ACL_PASSWORD", read_only_acl.secret, read_only_acl.password_key)
        )
        digests.append("-DzkDigestReadonlyUsername=$(ZK_READ_ACL_USERNAME)")
        digests.append("-DzkDigestReadonlyPassword=$(ZK_READ_ACL_PASSWORD)")

    env_vars.append(
        client.V1EnvVar(
            name="SOLR_ZK_CREDS_AND_ACLS",
            value=" ".join([ZK_ACL_PROVIDERS, *digests]),
        )
    )
    return True, env_vars


def resolve_server_and_chroot(cloud, status):
    """Find the ZooKeeper server list and chroot to use.

    An explicit connectionInfo is read on every pass, so edits to it take
    effect. Only a provided ensemble is looked up in the observed status,
    and until it has reported an address it cannot be connected to.
    """
    ref = cloud.spec.zookeeper_ref
    chroot = ref.chroot()

    explicit = ref.connection_info
    if explicit is not None:
        server = explicit.internal_connection_string or explicit.external_connection_string
        if server:
            return server, chroot
        raise ConfigurationError(
            f"zookeeperRef.connectionInfo of SolrCloud {cloud.name} has no connection string",
            "Set internalConnectionString or externalConnectionString",
        )

    info = status.zookeeper_connection_info if status is not None else None
    if ref.provided is not None and info is not None and info.internal_connection_string:
        return info.internal_connection_string, chroot

    raise ZookeeperNotReadyError(
        f"No ZooKeeper connection string known for SolrCloud {cloud.name}",
        "Waiting for the provided ZooKeeper cluster to report its address",
    )


def create_zk_connection(cloud, status):
    """Resolve the ZooKeeper connection and the env vars Solr needs for it."""
    server, chroot = resolve_server_and_chroot(cloud, status)
    logger.debug(f"SolrCloud {cloud.name} uses ZooKeeper {server}{chroot}")

    env_vars = [
        client.V1EnvVar(name="ZK_HOST", value=server + chroot),
        client.V1EnvVar(name="ZK_CHROOT", value=chroot),
        client.V1EnvVar(name="ZK_SERVER", value=server),
    ]
    solr_opts = []

    all_acl, read_only_acl = cloud.spec.zookeeper_ref.get_acls()
    has_acls, acl_env_vars = create_acl_env_vars(all_acl, read_only_acl)
    if has_acls:
        env_vars.extend(acl_env_vars)
        # SOLR_ZK_CREDS_AND_ACLS is not read by bin/solr, it has to go into SOLR_OPTS
        solr_opts.append(ZK_CREDS_AND_ACLS_OPT)

    return ZkConnection(server=server, chroot=chroot, env_vars=env_vars, solr_opts=solr_opts)


def chroot_setup_handler(zk):
    """postStart handler creating the chroot, or None when it is the root."""
    if not zk.has_chroot:
        return None
    return client.V1LifecycleHandler(
        _exec=client.V1ExecAction(command=["sh", "-c", CHROOT_SETUP_COMMAND])
    )


def create_setup_zk_init_container(cloud, zk, bootstrap_security_json):
    """Init container that prepares ZooKeeper before Solr starts.

    It sets the urlScheme cluster property when TLS is on and uploads the
    bootstrap security.json unless ZooKeeper already has one. Returns None
    when there is nothing to do.
    """
    solr_opts = list(zk.solr_opts)
    if cloud.spec.solr_opts:
        solr_opts.append(cloud.spec.solr_opts)

    env_vars = list(zk.env_vars)
    if solr_opts:
        env_vars.append(client.V1EnvVar(name="SOLR_OPTS", value=" ".join(solr_opts)))

    steps = []
    if cloud.spec.solr_tls is not None:
        steps.append(url_scheme_cluster_prop_command())

    if bootstrap_security_json:
        env_vars.append(
            client.V1EnvVar(
                name="SECURITY_JSON",
                value_from=client.V1EnvVarSource(
                    secret_key_ref=client.V1SecretKeySelector(
                        name=cloud.security_bootstrap_secret_name(),
                        key=crd.SECURITY_JSON_FILE,
                    )
                ),
            )
        )
        steps.append(
            "ZK_SECURITY_JSON=$(/opt/solr/server/scripts/cloud-scripts/zkcli.sh "
            "-zkhost ${ZK_HOST} -cmd get /security.json); "
            "if [ ${#ZK_SECURITY_JSON} -lt 3 ]; then echo $SECURITY_JSON > /tmp/security.json; "
            "/opt/solr/server/scripts/cloud-scripts/zkcli.sh -zkhost ${ZK_HOST} "
            "-cmd putfile /security.json /tmp/security.json; "
            'echo "put security.json in ZK"; fi'
        )

    if not steps:
        return None
    cmd = "; ".join([CHROOT_SETUP_COMMAND, *steps])

    image = cloud.spec.solr_image
    return client.V1Container(
        name="setup-zk",
        image=image.to_image_name(),
        image_pull_policy=image.pull_policy,
        termination_message_path="/dev/termination-log",
        termination_message_policy="File",
        command=["sh", "-c", cmd],
        env=env_vars,
    )
