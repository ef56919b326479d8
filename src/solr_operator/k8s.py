"""Kubernetes client helpers."""

import inspect
import json
import logging

from kubernetes import client, config
from kubernetes.client.rest import ApiException

logger = logging.getLogger(__name__)

# Initialize clients
_v1 = None
_apps_v1 = None
_networking_v1 = None

# Only used for (de)serialization, never for requests
_serializer = client.ApiClient()

# Newer clients take the response text and a content type instead of a response object
_DESERIALIZE_TAKES_CONTENT_TYPE = "content_type" in inspect.signature(_serializer.deserialize).parameters


def init_clients():
    """Initialize Kubernetes clients."""
    global _v1, _apps_v1, _networking_v1

    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except config.ConfigException:
        config.load_kube_config()
        logger.info("Loaded kubeconfig")

    _v1 = client.CoreV1Api()
    _apps_v1 = client.AppsV1Api()
    _networking_v1 = client.NetworkingV1Api()

    return _v1, _apps_v1, _networking_v1


def get_clients():
    """Get initialized Kubernetes clients."""
    if _v1 is None or _apps_v1 is None or _networking_v1 is None:
        return init_clients()
    return _v1, _apps_v1, _networking_v1


class _JsonResponse:
    """Minimal response object accepted by ApiClient.deserialize."""

    def __init__(self, obj):
        self.data = json.dumps(obj)


def deserialize(obj, klass):
    """Turn a camelCase manifest fragment into a kubernetes client model.

    klass is the model name as the client spells it, e.g. "V1Probe" or
    "list[V1Container]".
    """
    if obj is None:
        return None
    if klass.startswith("list[") and klass.endswith("]"):
        item_klass = klass[len("list[") : -1]
        return [deserialize(item, item_klass) for item in obj]
    if _DESERIALIZE_TAKES_CONTENT_TYPE:
        return _serializer.deserialize(json.dumps(obj), klass, "application/json")
    return _serializer.deserialize(_JsonResponse(obj), klass)


def serialize(obj):
    """Turn kubernetes client models into plain camelCase structures."""
    return _serializer.sanitize_for_serialization(obj)


def read_secret(v1, name, namespace):
    """Read a secret, returning None if it does not exist."""
    try:
        return v1.read_namespaced_secret(name=name, namespace=namespace)
    except ApiException as e:
        if e.status == 404:
            return None
        logger.error(f"Error reading secret {name}: {e}")
        raise


def read_config_map(v1, name, namespace):
    """Read a ConfigMap, returning None if it does not exist."""
    try:
        return v1.read_namespaced_config_map(name=name, namespace=namespace)
    except ApiException as e:
        if e.status == 404:
            return None
        logger.error(f"Error reading ConfigMap {name}: {e}")
        raise


def create_or_patch(read, create, patch, name, namespace, body, kind):
    """Create an object if missing, otherwise patch it to the desired body."""
    try:
        read(name=name, namespace=namespace)
    except ApiException as e:
        if e.status != 404:
            logger.error(f"Error checking {kind} {name}: {e}")
            raise
        logger.info(f"Creating {kind} {name}")
        create(namespace=namespace, body=body)
        return "created"

    patch(name=name, namespace=namespace, body=body)
    logger.debug(f"Patched {kind} {name}")
    return "patched"


def create_if_absent(read, create, name, namespace, body, kind):
    """Create an object only if it does not exist yet; never update it."""
    try:
        read(name=name, namespace=namespace)
        logger.debug(f"{kind} {name} already exists")
        return "exists"
    except ApiException as e:
        if e.status != 404:
            logger.error(f"Error checking {kind} {name}: {e}")
            raise
    logger.info(f"Creating {kind} {name}")
    try:
        create(namespace=namespace, body=body)
    except ApiException as e:
        # Lost a race with another writer, which is fine for write-once objects
        if e.status == 409:
            return "exists"
        raise
    return "created"


def read_service(v1, name, namespace):
    """Read a Service, returning None if it does not exist."""
    try:
        return v1.read_namespaced_service(name=name, namespace=namespace)
    except ApiException as e:
        if e.status == 404:
            return None
        logger.error(f"Error reading Service {name}: {e}")
        raise
