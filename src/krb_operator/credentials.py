"""Secrets for a KDC: the admin password, principal passwords and keytabs."""

import asyncio
import base64
import logging
import secrets
import string
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from . import constants as C
from . import resources
from .config import KrbOperatorConfig
from .errors import ConfigurationError
from .identity import ResourceIdentity
from .kube import SECRET, ResourceClient

logger = logging.getLogger(__name__)

PRINCIPAL_SECRET_KEY = "password"


def generate_password(length: int = 24) -> str:
    """Generate a secure random password."""
    alphabet = string.ascii_letters + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


@dataclass(frozen=True)
class PrincipalCredential:
    username: str
    password: str
    secret_name: str
    static: bool = False
    keytab_key: str = C.DEFAULT_KEYTAB_KEY
    has_keytab: bool = False


def _read_password(secret: Any, key: str) -> Optional[str]:
    data = secret.data or {}
    if key in data:
        return base64.b64decode(data[key]).decode("utf-8")
    return None


class Secrets:
    """Finds and creates the password Secrets owned by a KDC."""

    def __init__(self, clients: Dict[str, Any], cfg: KrbOperatorConfig):
        self.cfg = cfg
        self.secrets = ResourceClient(clients, SECRET)

    def admin_secret_identity(self, identity: ResourceIdentity) -> ResourceIdentity:
        return identity.with_name(resources.admin_secret_name(identity.require_name(), self.cfg))

    async def find_admin_secret(self, identity: ResourceIdentity) -> Optional[Any]:
        return await self.secrets.find(self.admin_secret_identity(identity))

    async def delete(self, secret: Any) -> bool:
        return await self.secrets.delete(secret)

    async def create_admin_secret(self, identity: ResourceIdentity) -> bool:
        """Create the admin password Secret if it does not exist yet."""
        namespace = identity.require_namespace()
        secret_identity = self.admin_secret_identity(identity)
        body = resources.build_password_secret(
            secret_identity.name,
            namespace,
            self.cfg.admin_pwd.secret_key,
            generate_password(),
            "admin-password",
        )
        created = await self.secrets.create_if_absent(body, secret_identity)
        if created:
            logger.info(f"[{namespace}] Admin secret {secret_identity.name} created")
        else:
            logger.debug(f"[{namespace}] Admin secret {secret_identity.name} already exists")
        return created

    async def create_principal_secrets(
        self,
        identity: ResourceIdentity,
        principals: List[Dict[str, Any]],
        owner: Optional[Dict[str, Any]] = None,
    ) -> List[PrincipalCredential]:
        """Find or create one password Secret per principal.

        Existing secrets keep their password, so repeated reconciles hand the
        same credentials to kadmin.
        """
        namespace = identity.require_namespace()
        if self.cfg.parallel_secret_creation:
            credentials = await asyncio.gather(
                *(self._ensure_principal_secret(identity, p, owner) for p in principals)
            )
        else:
            credentials = []
            for principal in principals:
                credentials.append(await self._ensure_principal_secret(identity, principal, owner))
        logger.info(f"[{namespace}] {len(credentials)} principal secret(s) in place")
        return list(credentials)

    async def _ensure_principal_secret(
        self,
        identity: ResourceIdentity,
        principal: Dict[str, Any],
        owner: Optional[Dict[str, Any]],
    ) -> PrincipalCredential:
        username = principal.get("name")
        if not username:
            raise ConfigurationError(f"Principal without a name in {identity}")

        secret_name = (principal.get("secret") or {}).get("name") or resources.principal_secret_name(
            identity.require_name(), username
        )
        secret_identity = identity.with_name(secret_name)
        keytab_key = principal.get("keytab") or C.DEFAULT_KEYTAB_KEY
        if keytab_key == PRINCIPAL_SECRET_KEY:
            raise ConfigurationError(f"Keytab key of principal {username} clashes with '{PRINCIPAL_SECRET_KEY}'")
        password_spec = principal.get("password") or {}
        static = password_spec.get("type", "random") == "static"

        existing = await self.secrets.find(secret_identity)
        if existing is not None:
            password = _read_password(existing, PRINCIPAL_SECRET_KEY)
            if password is not None:
                return PrincipalCredential(
                    username,
                    password,
                    secret_name,
                    static=static,
                    keytab_key=keytab_key,
                    has_keytab=keytab_key in (existing.data or {}),
                )
            raise ConfigurationError(
                f"Secret {secret_identity} exists without key '{PRINCIPAL_SECRET_KEY}'"
            )

        if static:
            password = password_spec.get("value")
            if not password:
                raise ConfigurationError(f"Static password for principal {username} is empty")
        else:
            password = generate_password()

        body = resources.build_password_secret(
            secret_name,
            identity.require_namespace(),
            PRINCIPAL_SECRET_KEY,
            password,
            "principal-password",
            owner,
        )
        await self.secrets.create_or_replace(body, secret_identity)
        return PrincipalCredential(username, password, secret_name, static=static, keytab_key=keytab_key)

    async def store_keytab(
        self,
        identity: ResourceIdentity,
        credential: PrincipalCredential,
        keytab: str,
        owner: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Add a base64 encoded keytab to the principal's password Secret."""
        namespace = identity.require_namespace()
        secret_identity = identity.with_name(credential.secret_name)
        existing = await self.secrets.find(secret_identity)
        data = dict((existing.data or {}) if existing is not None else {})
        if PRINCIPAL_SECRET_KEY not in data:
            data[PRINCIPAL_SECRET_KEY] = base64.b64encode(credential.password.encode("utf-8")).decode("ascii")
        data[credential.keytab_key] = keytab

        body = resources.build_secret(credential.secret_name, namespace, data, "principal-password", owner)
        await self.secrets.create_or_replace(body, secret_identity)
        logger.info(f"[{namespace}] Keytab for {credential.username} stored in {credential.secret_name}")
