"""Main operator entrypoint using Kopf."""

import logging
import os

import kopf

from . import crd
from .exceptions import ZookeeperNotReadyError
from .k8s import init_clients
from .reconcile import reconcile_solrcloud

# Configure logging
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

RECONCILE_INTERVAL = float(os.environ.get("RECONCILE_INTERVAL", "30"))


@kopf.on.startup()
def configure(**kwargs):
    """Initialize Kubernetes clients before handling any SolrCloud."""
    init_clients()


def _reconcile(spec, status, name, namespace, uid, meta, patch):
    result = reconcile_solrcloud(spec, status, name, namespace, uid, meta=meta)
    for key, value in result.items():
        patch.status[key] = value


@kopf.on.create(crd.GROUP, crd.VERSION, crd.PLURAL)
@kopf.on.update(crd.GROUP, crd.VERSION, crd.PLURAL)
@kopf.on.resume(crd.GROUP, crd.VERSION, crd.PLURAL)
def solrcloud_handler(spec, status, name, namespace, uid, meta, patch, **kwargs):
    """Handle SolrCloud create/update/resume events."""
    logger.info(f"Handling SolrCloud {name} in namespace {namespace}")

    try:
        _reconcile(spec, status, name, namespace, uid, meta, patch)
    except ValueError as e:
        logger.error(f"Validation error: {e}")
        raise kopf.PermanentError(str(e))
    except ZookeeperNotReadyError as e:
        logger.info(f"SolrCloud {name} waiting for ZooKeeper: {e.message}")
        raise kopf.TemporaryError(str(e), delay=10)
    except Exception as e:
        logger.error(f"Reconciliation error: {e}", exc_info=True)
        raise kopf.TemporaryError(f"Reconciliation failed: {e}", delay=30)


@kopf.timer(crd.GROUP, crd.VERSION, crd.PLURAL, interval=RECONCILE_INTERVAL, idle=RECONCILE_INTERVAL)
def solrcloud_timer(spec, status, name, namespace, uid, meta, patch, **kwargs):
    """Periodic reconciliation timer."""
    logger.debug(f"Timer reconciliation for SolrCloud {name}")
    try:
        _reconcile(spec, status, name, namespace, uid, meta, patch)
    except ZookeeperNotReadyError as e:
        logger.debug(f"SolrCloud {name} still waiting for ZooKeeper: {e.message}")
    except Exception as e:
        logger.error(f"Timer reconciliation error: {e}", exc_info=True)


@kopf.on.delete(crd.GROUP, crd.VERSION, crd.PLURAL, optional=True)
def solrcloud_delete(name, namespace, **kwargs):
    """Handle SolrCloud deletion."""
    # Owner references remove the generated objects; claims follow the StatefulSet's retention
    logger.info(f"SolrCloud {name} deleted from namespace {namespace}")


if __name__ == "__main__":
    kopf.run()
