"""
Reconciliation of the Kubernetes resources backing one KDC.

Every operation re-reads the API server instead of caching objects, so the
same call can run any number of times for the same Kdc, including after a
partially failed earlier attempt.
"""
import asyncio
import base64
import binascii
import logging
import shlex
import string
from typing import Any, Dict, List, Optional

from kubernetes.stream import stream

from . import constants as C
from . import resources
from .config import KrbOperatorConfig
from .credentials import PrincipalCredential, Secrets
from .errors import ConfigurationError, PrincipalError, ReadinessTimeoutError, TeardownError
from .identity import ResourceIdentity
from .kube import DEPLOYMENT, POD, SERVICE, ResourceClient
from .readiness import is_deployment_ready
from .waiter import wait_for

logger = logging.getLogger(__name__)


class Template:
    """Creates, waits for and deletes the Deployment, Service and admin
    Secret of a KDC."""

    def __init__(self, clients: Dict[str, Any], secrets: Secrets, cfg: KrbOperatorConfig):
        self.clients = clients
        self.secrets = secrets
        self.cfg = cfg
        self.deployments = ResourceClient(clients, DEPLOYMENT)
        self.services = ResourceClient(clients, SERVICE)
        self.pods = ResourceClient(clients, POD)
        self.deployment_timeout = C.DEPLOYMENT_TIMEOUT
        self.poll_interval = C.POLL_INTERVAL

    async def find_deployment(self, identity: ResourceIdentity) -> Any:
        return await self.deployments.find(identity)

    async def find_service(self, identity: ResourceIdentity) -> Any:
        return await self.services.find(identity)

    async def create_service(self, identity: ResourceIdentity) -> None:
        """Create or replace the KDC Service.

        A failed write is ignored when the Service exists afterwards: a retried
        reconcile may race the write of its own earlier attempt.
        """
        name = identity.require_name()
        namespace = identity.require_namespace()
        body = resources.build_service(name, namespace)
        try:
            await self.services.create_or_replace(body, identity)
        except Exception as e:
            if await self.find_service(identity) is None:
                logger.error(f"[{namespace}] Failed to create service {name}: {e}")
                raise
            logger.info(f"[{namespace}] Service {name} already exists, ignoring: {e}")

    async def create_deployment(self, identity: ResourceIdentity, realm: str) -> None:
        """Create or replace the KDC Deployment for ``realm``."""
        namespace = identity.require_namespace()
        logger.debug(f"[{namespace}] Creating new deployment for KDC: {identity.name}")
        name = identity.require_name()

        body = resources.build_deployment(name, namespace, realm, self.cfg)
        await self.deployments.create_or_replace(body, identity)

    async def wait_for_deployment(self, identity: ResourceIdentity) -> None:
        """Block until the KDC Deployment is ready.

        Raises:
            ReadinessTimeoutError: not ready within the fixed wait window
        """
        namespace = identity.require_namespace()
        identity.require_name()
        logger.info(
            f"[{namespace}] Going to wait for deployment until ready: {self.deployment_timeout}s"
        )

        async def check() -> bool:
            deployment = await self.find_deployment(identity)
            return deployment is not None and is_deployment_ready(deployment)

        ready = await wait_for(namespace, self.deployment_timeout, check, self.poll_interval)
        if not ready:
            logger.error(f"[{namespace}] Deployment {identity.name} is not ready")
            raise ReadinessTimeoutError(identity, self.deployment_timeout)
        logger.debug(f"[{namespace}] deployment is ready: {identity}")

    async def delete(self, identity: ResourceIdentity) -> bool:
        """Delete the Deployment, Service and admin Secret of a KDC.

        Each kind is looked up and deleted on its own, a missing one does not
        stop the others.

        Returns:
            True if any of the three resources was found

        Raises:
            TeardownError: an API call failed, chained to the cause
        """
        namespace = identity.require_namespace()
        identity.require_name()
        try:
            deployment = await self.find_deployment(identity)
            deleted_deployment = (
                await self.deployments.delete(deployment) if deployment is not None else False
            )

            service = await self.find_service(identity)
            deleted_service = await self.services.delete(service) if service is not None else False

            secret = await self.secrets.find_admin_secret(identity)
            deleted_secret = await self.secrets.delete(secret) if secret is not None else False

            found = deployment is not None or service is not None or secret is not None
            logger.info(
                f"[{namespace}] {'found' if found else 'not found'} resources to delete "
                f"(deployment={deleted_deployment}, service={deleted_service}, "
                f"admin secret={deleted_secret})"
            )
            return found
        except Exception as e:
            logger.error(f"[{namespace}] Failed to delete: {e}", exc_info=True)
            raise TeardownError(identity) from e

    async def add_principals(
        self, identity: ResourceIdentity, credentials: List[PrincipalCredential]
    ) -> None:
        """Register principals in the KDC database via kadmin in the KDC pod.

        Principals that already exist are left as they are.
        """
        if not credentials:
            return
        namespace = identity.require_namespace()
        pod_name = await self._find_kdc_pod(identity)

        for credential in credentials:
            command = render_kadmin_command(
                self.cfg.commands.add_principal,
                username=credential.username,
                password=credential.password,
            )
            output = await self._exec(namespace, pod_name, command)
            self._check_kadmin(output, f"add principal {credential.username}", namespace, pod_name)
            logger.info(f"[{namespace}] Principal {credential.username} added")

    async def add_keytabs(
        self,
        identity: ResourceIdentity,
        credentials: List[PrincipalCredential],
        owner: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Export a keytab for every principal whose Secret has none yet.

        Static passwords keep their keys, random ones are re-keyed on export.
        The keytab is read back from the kadmin container and stored in the
        principal's Secret.

        Returns:
            Number of keytabs exported
        """
        pending = [c for c in credentials if not c.has_keytab]
        if not pending:
            return 0
        namespace = identity.require_namespace()
        pod_name = await self._find_kdc_pod(identity)
        keytab_commands = self.cfg.commands.add_keytab

        for credential in pending:
            path = f"{C.KEYTAB_DIR}/{credential.secret_name}.keytab"
            template = keytab_commands.no_random_key if credential.static else keytab_commands.random_key
            command = render_kadmin_command(template, username=credential.username, path=path)
            output = await self._exec(namespace, pod_name, command)
            self._check_kadmin(output, f"export keytab of {credential.username}", namespace, pod_name)

            encoded = await self._exec(namespace, pod_name, ["base64", path])
            await self._exec(namespace, pod_name, ["rm", "-f", path])
            keytab = "".join(encoded.split())
            try:
                exported = base64.b64decode(keytab, validate=True)
            except binascii.Error as e:
                raise PrincipalError(
                    f"Could not read keytab {path} of {credential.username}: {encoded.strip()}"
                ) from e
            if not exported:
                raise PrincipalError(f"Keytab {path} of {credential.username} is empty")

            await self.secrets.store_keytab(identity, credential, keytab, owner)
        return len(pending)

    @staticmethod
    def _check_kadmin(output: str, action: str, namespace: str, pod_name: str) -> None:
        for line in output.splitlines():
            if C.KADMIN_FAILURE_RE.search(line) and C.KADMIN_ALREADY_EXISTS not in line:
                raise PrincipalError(f"Failed to {action} in {namespace}/{pod_name}: {line.strip()}")

    async def _find_kdc_pod(self, identity: ResourceIdentity) -> str:
        namespace = identity.require_namespace()
        selector = f"{C.DEPLOYMENT_SELECTOR}={identity.require_name()}"
        pods = await self.pods.list(namespace, selector)
        for pod in pods:
            if pod.status is not None and pod.status.phase == "Running":
                return pod.metadata.name
        raise PrincipalError(f"No running KDC pod for {identity}")

    async def _exec(self, namespace: str, pod_name: str, command: List[str]) -> str:
        core = self.clients["core"]
        return await asyncio.to_thread(
            lambda: stream(
                core.connect_get_namespaced_pod_exec,
                pod_name,
                namespace,
                container=self.cfg.kadmin_container,
                command=command,
                stderr=True,
                stdin=False,
                stdout=True,
                tty=False,
            )
        )


def render_kadmin_command(command: str, **values: str) -> List[str]:
    """Split a configured kadmin command into argv and fill in ``$name`` values.

    The command runs without a shell. Values are double quoted for kadmin's
    own query parser, which has no escape for a quote or a line break.
    """
    quoted = {}
    for key, value in values.items():
        if any(ch in value for ch in '"\n\r'):
            raise ConfigurationError(f"Value for '{key}' contains a quote or line break")
        quoted[key] = f'"{value}"'
    return [string.Template(arg).safe_substitute(quoted) for arg in shlex.split(command)]
