"""Basic auth bootstrap: generated credentials and the initial security.json."""

import base64
import hashlib
import json
import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from kubernetes import client

from . import crd
from .exceptions import InvalidSecretError
from .labels import normalize

logger = logging.getLogger(__name__)

LOWER = "abcdefghijklmnpqrstuvwxyz"  # no 'o'
UPPER = LOWER.upper()
DIGITS = "0123456789"
PASSWORD_CHARS = LOWER + UPPER + DIGITS + "()[]%#@-()[]%#@-"
PASSWORD_LENGTH = 16

ADMIN_USER = "admin"
SOLR_USER = "solr"
BOOTSTRAP_USERS = (ADMIN_USER, crd.DEFAULT_BASIC_AUTH_USERNAME, SOLR_USER)

PROBE_ROLE = "k8s"


@dataclass(frozen=True)
class SecurityResult:
    """Secrets for a cloud's basic auth plus what the pods need to know."""

    basic_auth_secret: Optional[client.V1Secret] = None
    bootstrap_secret: Optional[client.V1Secret] = None
    basic_auth_md5: str = ""
    # True when the secrets were created in this pass
    generated: bool = False


def random_password(rng) -> str:
    """16 chars, starting lower case and ending upper case."""
    perm = rng.sample(range(len(PASSWORD_CHARS)), len(PASSWORD_CHARS))
    middle = "".join(PASSWORD_CHARS[perm[i]] for i in range(1, PASSWORD_LENGTH - 1))
    return rng.choice(LOWER) + middle + rng.choice(UPPER)


def random_salt(rng) -> bytes:
    return hashlib.sha256(rng.randbytes(32)).digest()


def solr_password_hash(password: str, salt: bytes) -> str:
    """Hash a password the way Solr's BasicAuthPlugin verifies it.

    Returns:
        "<base64 sha256(sha256(salt + password))> <base64 salt>"
    """
    digest = hashlib.sha256(salt + password.encode("utf-8")).digest()
    digest = hashlib.sha256(digest).digest()
    return f"{base64.b64encode(digest).decode()} {base64.b64encode(salt).decode()}"


def custom_probe_paths(cloud):
    """HTTP paths of the user's probe overrides: readiness, liveness, startup."""
    pod_options = cloud.spec.custom_solr_kube_options.pod_options
    paths = []
    for probe in (pod_options.readiness_probe, pod_options.liveness_probe, pod_options.startup_probe):
        http_get = (probe or {}).get("httpGet")
        if http_get and http_get.get("path"):
            paths.append(http_get["path"])
    return paths


def probe_paths(cloud):
    """All probe paths needing a permission, first occurrence wins."""
    paths = [crd.DEFAULT_PROBE_PATH, *custom_probe_paths(cloud)]
    return list(dict.fromkeys(paths))


def generate_security_json(cloud, credentials) -> str:
    """The security.json used to bootstrap BasicAuth and rule based authorization.

    Args:
        cloud: The SolrCloud
        credentials: user name -> hashed credential
    """
    probes_require_auth = cloud.spec.solr_security.probes_require_auth
    probe_role = PROBE_ROLE if probes_require_auth else None

    permissions = []
    for i, path in enumerate(probe_paths(cloud)):
        if path.startswith("/solr"):
            path = path[len("/solr"):]
        permissions.append(
            {"name": f"k8s-probe-{i}", "role": probe_role, "collection": None, "path": path}
        )
    permissions.extend(
        [
            {"name": "k8s-status", "role": "k8s", "collection": None, "path": "/admin/collections"},
            {"name": "k8s-metrics", "role": "k8s", "collection": None, "path": "/admin/metrics"},
            {"name": "k8s-zk", "role": "k8s", "collection": None, "path": "/admin/zookeeper/status"},
            {"name": "k8s-ping", "role": "k8s", "collection": "*", "path": "/admin/ping"},
            {"name": "read", "role": ["admin", "users"]},
            {"name": "update", "role": ["admin"]},
            {"name": "security-read", "role": ["admin"]},
            {"name": "security-edit", "role": ["admin"]},
            {"name": "all", "role": ["admin"]},
        ]
    )

    security = {
        "authentication": {
            "blockUnknown": probes_require_auth,
            "class": "solr.BasicAuthPlugin",
            "credentials": {user: credentials[user] for user in sorted(credentials)},
            "realm": "Solr Basic Auth",
            "forwardCredentials": False,
        },
        "authorization": {
            "class": "solr.RuleBasedAuthorizationPlugin",
            "user-role": {
                ADMIN_USER: ["admin", "k8s"],
                crd.DEFAULT_BASIC_AUTH_USERNAME: ["k8s"],
                SOLR_USER: ["users", "k8s"],
            },
            "permissions": permissions,
        },
    }
    return json.dumps(security, indent=2)


def generate_bootstrap_data(cloud, rng):
    """Random passwords for every bootstrap user plus the security.json using them."""
    passwords = {}
    credentials = {}
    for user in BOOTSTRAP_USERS:
        passwords[user] = random_password(rng)
        credentials[user] = solr_password_hash(passwords[user], random_salt(rng))

    data = dict(passwords)
    data[crd.SECURITY_JSON_FILE] = generate_security_json(cloud, credentials)
    return data


def _encode(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode()


def secret_value(secret, key):
    """Decoded value of a secret key, or None when missing."""
    if secret.data and key in secret.data:
        return base64.b64decode(secret.data[key]).decode("utf-8")
    if secret.string_data and key in secret.string_data:
        return secret.string_data[key]
    return None


def generate_basic_auth_secrets(cloud, rng):
    """Create the public basic auth secret and the internal bootstrap secret.

    Returns:
        Tuple of (basic_auth_secret, bootstrap_secret)
    """
    data = generate_bootstrap_data(cloud, rng)
    labels, _ = normalize(cloud.shared_labels(), None, cloud.metadata.labels, None)

    basic_auth_secret = client.V1Secret(
        metadata=client.V1ObjectMeta(
            name=cloud.basic_auth_secret_name(), namespace=cloud.namespace, labels=labels
        ),
        type=crd.BASIC_AUTH_SECRET_TYPE,
        data={
            crd.BASIC_AUTH_USERNAME_KEY: _encode(crd.DEFAULT_BASIC_AUTH_USERNAME),
            crd.BASIC_AUTH_PASSWORD_KEY: _encode(data[crd.DEFAULT_BASIC_AUTH_USERNAME]),
        },
    )
    # Read once by the setup-zk init container, never updated afterwards
    bootstrap_secret = client.V1Secret(
        metadata=client.V1ObjectMeta(
            name=cloud.security_bootstrap_secret_name(),
            namespace=cloud.namespace,
            labels=dict(labels),
        ),
        type="Opaque",
        data={
            ADMIN_USER: _encode(data[ADMIN_USER]),
            SOLR_USER: _encode(data[SOLR_USER]),
            crd.SECURITY_JSON_FILE: _encode(data[crd.SECURITY_JSON_FILE]),
        },
    )
    return basic_auth_secret, bootstrap_secret


def validate_basic_auth_secret(secret):
    if secret.type != crd.BASIC_AUTH_SECRET_TYPE:
        raise InvalidSecretError(
            f"Invalid secret type {secret.type}; user-provided secret {secret.metadata.name} "
            f"must be of type: {crd.BASIC_AUTH_SECRET_TYPE}"
        )
    for key in (crd.BASIC_AUTH_USERNAME_KEY, crd.BASIC_AUTH_PASSWORD_KEY):
        if secret_value(secret, key) is None:
            raise InvalidSecretError(
                f"{key} key not found in user-provided basic-auth secret {secret.metadata.name}"
            )


def basic_auth_md5(secret) -> str:
    """Digest of the credentials, so a credential change restarts the pods."""
    creds = (
        f"{secret_value(secret, crd.BASIC_AUTH_USERNAME_KEY)}"
        f":{secret_value(secret, crd.BASIC_AUTH_PASSWORD_KEY)}"
    )
    return hashlib.md5(creds.encode("utf-8")).hexdigest()


def resolve_security(cloud, existing, rng=None):
    """Work out the basic auth secrets for a cloud.

    A user-provided secret is validated and used as is. Otherwise the
    generated secrets are created only when the public secret is missing from
    ``existing``; once present they are returned unchanged.

    Args:
        cloud: The SolrCloud
        existing: ExistingState snapshot of persisted secrets
        rng: random.Random compatible source, defaults to secrets.SystemRandom()

    Returns:
        SecurityResult
    """
    security = cloud.spec.solr_security
    if security is None:
        return SecurityResult()

    secret_name = cloud.basic_auth_secret_name()
    probes_require_auth = security.probes_require_auth

    if security.basic_auth_secret:
        secret = existing.secrets.get(secret_name)
        if secret is None:
            raise InvalidSecretError(
                f"User-provided basic-auth secret {secret_name} not found "
                f"in namespace {cloud.namespace}"
            )
        validate_basic_auth_secret(secret)
        return SecurityResult(basic_auth_md5=basic_auth_md5(secret) if probes_require_auth else "")

    basic_auth_secret = existing.secrets.get(secret_name)
    if basic_auth_secret is not None:
        return SecurityResult(
            basic_auth_secret=basic_auth_secret,
            bootstrap_secret=existing.secrets.get(cloud.security_bootstrap_secret_name()),
            basic_auth_md5=basic_auth_md5(basic_auth_secret) if probes_require_auth else "",
        )

    logger.info(f"Generating basic auth credentials for SolrCloud {cloud.name}")
    basic_auth_secret, bootstrap_secret = generate_basic_auth_secrets(
        cloud, rng if rng is not None else secrets.SystemRandom()
    )
    return SecurityResult(
        basic_auth_secret=basic_auth_secret,
        bootstrap_secret=bootstrap_secret,
        basic_auth_md5=basic_auth_md5(basic_auth_secret) if probes_require_auth else "",
        generated=True,
    )
