"""Thin async facade over the Kubernetes API for the kinds a KDC owns.

The ``kubernetes`` client is synchronous, so every call runs in a worker
thread via ``asyncio.to_thread``. "Not found" is returned as ``None``, never
raised.
"""
import asyncio
import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import kubernetes
from kubernetes import client
from kubernetes.client.rest import ApiException

from .errors import PlatformOperationError
from .identity import ResourceIdentity

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_CREATED = 201


def get_k8s_clients() -> Dict[str, Any]:
    """Get Kubernetes API clients."""
    return {
        "core": client.CoreV1Api(),
        "apps": client.AppsV1Api(),
    }


def load_kube_config() -> str:
    """Configure the kubernetes client, in-cluster first then kubeconfig."""
    try:
        kubernetes.config.load_incluster_config()
        return "in-cluster"
    except kubernetes.config.ConfigException:
        kubernetes.config.load_kube_config()
        return "kubeconfig"


def _keep_cluster_ip(body: Dict[str, Any], existing: Any) -> None:
    # clusterIP is immutable, replacing without it is rejected
    cluster_ip = getattr(existing.spec, "cluster_ip", None)
    if cluster_ip:
        body.setdefault("spec", {})["clusterIP"] = cluster_ip


@dataclass(frozen=True)
class ResourceKind:
    """One namespaced kind: which API group serves it and its method suffix."""

    kind: str
    api: str
    suffix: str
    on_replace: Optional[Callable[[Dict[str, Any], Any], None]] = None


DEPLOYMENT = ResourceKind("Deployment", "apps", "deployment")
SERVICE = ResourceKind("Service", "core", "service", on_replace=_keep_cluster_ip)
SECRET = ResourceKind("Secret", "core", "secret")
POD = ResourceKind("Pod", "core", "pod")


class ResourceClient:
    """Find, create-or-replace and delete objects of one kind."""

    def __init__(self, clients: Dict[str, Any], kind: ResourceKind):
        self.kind = kind
        self.api = clients[kind.api]

    def _method(self, verb: str, http_info: bool = False) -> Callable[..., Any]:
        name = f"{verb}_namespaced_{self.kind.suffix}"
        if http_info:
            name += "_with_http_info"
        return getattr(self.api, name)

    async def find(self, identity: ResourceIdentity) -> Optional[Any]:
        """Read the object, returning None if it cannot be retrieved."""
        name = identity.require_name()
        namespace = identity.require_namespace()
        try:
            return await asyncio.to_thread(self._method("read"), name, namespace)
        except ApiException as e:
            logger.debug(f"[{namespace}] {self.kind.kind} {name} not retrieved: {e.status}")
            return None
        except Exception as e:
            # Transport failures, timeouts: absent until the next attempt
            logger.warning(f"[{namespace}] {self.kind.kind} {name} not retrieved: {e}")
            return None

    async def list(self, namespace: str, label_selector: str) -> List[Any]:
        """List objects in a namespace matching a label selector."""
        result = await asyncio.to_thread(
            self._method("list"), namespace, label_selector=label_selector
        )
        return list(result.items or [])

    async def create_or_replace(self, body: Dict[str, Any], identity: ResourceIdentity) -> Dict[str, Any]:
        """Create the object, or replace it when it already exists.

        Raises:
            PlatformOperationError: the API rejected the write or answered
                with a status other than Created / OK
        """
        existing = await self.find(identity)
        if existing is None:
            return await self._write("create", body, identity, HTTP_CREATED)

        body = copy.deepcopy(body)
        body.setdefault("metadata", {})["resourceVersion"] = existing.metadata.resource_version
        if self.kind.on_replace is not None:
            self.kind.on_replace(body, existing)
        return await self._write("replace", body, identity, HTTP_OK)

    async def create_if_absent(self, body: Dict[str, Any], identity: ResourceIdentity) -> bool:
        """Create the object only if it does not exist yet.

        Returns:
            True if the object was created, False if it was already there
        """
        if await self.find(identity) is not None:
            return False
        await self._write("create", body, identity, HTTP_CREATED)
        return True

    async def _write(self, verb: str, body: Dict[str, Any], identity: ResourceIdentity, expected: int) -> Dict[str, Any]:
        name = identity.require_name()
        namespace = identity.require_namespace()
        args = (namespace, body) if verb == "create" else (name, namespace, body)

        logger.info(f"[{namespace}] {verb.capitalize()} {self.kind.kind} {name}")
        try:
            _, status, _ = await asyncio.to_thread(self._method(verb, http_info=True), *args)
        except ApiException as e:
            logger.error(f"[{namespace}] Failed to {verb} {self.kind.kind} {name}: {e.status} {e.reason}")
            raise PlatformOperationError(self.kind.kind, identity, e.status, body) from e

        if status != expected:
            logger.error(f"[{namespace}] Unexpected status {status} on {verb} {self.kind.kind} {name}")
            raise PlatformOperationError(self.kind.kind, identity, status, body)
        return body

    async def delete(self, resource: Any) -> bool:
        """Delete a previously found object.

        Returns:
            True iff the API answered OK
        """
        name = resource.metadata.name
        namespace = resource.metadata.namespace
        try:
            _, status, _ = await asyncio.to_thread(
                self._method("delete", http_info=True), name, namespace
            )
        except ApiException as e:
            logger.warning(f"[{namespace}] Could not delete {self.kind.kind} {name}: {e.status} {e.reason}")
            return False
        logger.info(f"[{namespace}] Deleted {self.kind.kind} {name}: {status}")
        return status == HTTP_OK
