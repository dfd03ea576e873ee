"""Main Kopf operator for Kdc resources."""

import contextlib
import logging
import os
import sys
from typing import Any, Dict, Iterator, Optional

import kopf
import kubernetes

from . import constants as C
from .config import KrbOperatorConfig, load_config
from .credentials import Secrets
from .errors import (
    ConfigurationError,
    PlatformOperationError,
    PrincipalError,
    ReadinessTimeoutError,
    TeardownError,
)
from .identity import ResourceIdentity
from .kube import get_k8s_clients, load_kube_config
from .readiness import is_deployment_ready
from .template import Template

logger = logging.getLogger(__name__)

# Loaded once by main() before kopf starts
CONFIG: Optional[KrbOperatorConfig] = None


def get_config() -> KrbOperatorConfig:
    if CONFIG is None:
        raise ConfigurationError("Operator configuration is not loaded")
    return CONFIG


def get_template() -> Template:
    """Build the reconciliation engine over fresh API clients."""
    cfg = get_config()
    clients = get_k8s_clients()
    return Template(clients, Secrets(clients, cfg), cfg)


@contextlib.contextmanager
def translate_errors() -> Iterator[None]:
    """Map engine errors onto kopf's retry semantics."""
    try:
        yield
    except ConfigurationError as e:
        raise kopf.PermanentError(str(e)) from e
    except (PlatformOperationError, ReadinessTimeoutError, PrincipalError, TeardownError) as e:
        delay = CONFIG.reconciler_interval if CONFIG is not None else 60
        raise kopf.TemporaryError(str(e), delay=delay) from e


@kopf.on.startup()
async def on_startup(settings: kopf.OperatorSettings, **kwargs: Any) -> None:
    """Configure the Kubernetes client and kopf's own settings."""
    with translate_errors():
        cfg = get_config()

    try:
        source = load_kube_config()
    except kubernetes.config.ConfigException as e:
        logger.error(f"Could not configure Kubernetes client: {e}")
        raise kopf.PermanentError("Could not configure Kubernetes client.") from e
    logger.info(f"Using {source} Kubernetes configuration.")

    settings.persistence.finalizer = f"{cfg.operator_prefix}/finalizer"
    # Every log line would otherwise become a k8s Event
    settings.posting.enabled = False
    logger.info("Operator started.")


# ============================================================================
# Kdc Handlers
# ============================================================================

async def reconcile_kdc(spec, meta, body, **kwargs) -> Dict[str, Any]:
    """Reconcile a Kdc resource.

    Creates the admin secret, the Service and the Deployment, waits for the
    Deployment to become ready, registers the declared principals and stores
    their keytabs.
    """
    identity = ResourceIdentity.from_meta(meta)
    logger.info(f"Reconciling Kdc {identity}")

    with translate_errors():
        realm = spec.get("realm")
        if not realm:
            raise ConfigurationError(f"Kdc {identity} has no realm")

        template = get_template()
        await template.secrets.create_admin_secret(identity)
        await template.create_service(identity)
        await template.create_deployment(identity, realm)
        await template.wait_for_deployment(identity)

        credentials = await template.secrets.create_principal_secrets(
            identity, list(spec.get("principals") or []), owner=body
        )
        await template.add_principals(identity, credentials)
        keytabs = await template.add_keytabs(identity, credentials, owner=body)

    return {
        "phase": "Ready",
        "ready": "True",
        "realm": realm,
        "principals": len(credentials),
        "keytabs": keytabs,
    }


async def delete_kdc(meta, **kwargs) -> None:
    """Handle Kdc deletion.

    The Deployment, Service and admin secret are deleted explicitly, principal
    secrets are garbage collected through their owner reference.
    """
    identity = ResourceIdentity.from_meta(meta)
    logger.info(f"Deleting Kdc {identity}")

    with translate_errors():
        await get_template().delete(identity)


async def check_health(meta, **kwargs) -> Dict[str, Any]:
    """Periodic health check for Kdc."""
    identity = ResourceIdentity.from_meta(meta)

    with translate_errors():
        deployment = await get_template().find_deployment(identity)

    if deployment is None:
        return {
            "ready": "False",
            "conditions": [{
                "type": "Ready",
                "status": "False",
                "reason": "DeploymentNotFound",
                "message": "KDC deployment not found",
            }],
        }
    if is_deployment_ready(deployment):
        return {"ready": "True"}

    available = deployment.status.available_replicas if deployment.status else None
    return {
        "ready": "False",
        "conditions": [{
            "type": "Ready",
            "status": "False",
            "reason": "DeploymentNotReady",
            "message": f"Available replicas: {available or 0}/{deployment.spec.replicas}",
        }],
    }


def register_handlers(cfg: KrbOperatorConfig, registry: Optional[kopf.OperatorRegistry] = None) -> None:
    """Register the Kdc handlers for the configured CRD version.

    The health check timer runs every ``reconcilerInterval``.
    """
    resource = (C.API_GROUP, cfg.crd_version, C.PLURAL)
    kopf.on.create(*resource, registry=registry)(reconcile_kdc)
    kopf.on.resume(*resource, registry=registry)(reconcile_kdc)
    kopf.on.update(*resource, field="spec", registry=registry)(reconcile_kdc)
    kopf.on.delete(*resource, registry=registry)(delete_kdc)
    kopf.timer(
        *resource,
        interval=cfg.reconciler_interval,
        idle=cfg.reconciler_interval,
        registry=registry,
    )(check_health)
    logger.info(f"Watching {C.PLURAL}.{C.API_GROUP}/{cfg.crd_version}")


def main():
    """Entry point for the operator."""
    global CONFIG
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    try:
        CONFIG = load_config()
    except ConfigurationError as e:
        logger.error(f"Invalid operator configuration: {e}")
        sys.exit(1)

    register_handlers(CONFIG)
    # Kopf takes over from here
    kopf.run(clusterwide=True)


if __name__ == "__main__":
    main()
