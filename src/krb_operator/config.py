"""Static operator configuration.

Loaded once at startup from a YAML file (``APP_CONFIG_PATH``) with the values
under its ``operator:`` key, then overlaid by ``KRB_OPERATOR_*`` environment
variables. Nested fields use a double underscore, e.g.
``KRB_OPERATOR_ADMIN_PWD__SECRET_NAME``.
"""
import logging
import os
import re
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from . import constants as C
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class KeytabCommands(_Section):
    """kadmin commands exporting a keytab to ``$path``."""

    random_key: str
    no_random_key: str


class Commands(_Section):
    add_principal: str
    add_keytab: KeytabCommands


class AdminPassword(_Section):
    secret_name: str
    secret_key: str


class KrbOperatorConfig(_Section):
    krb5_image: str
    admin_principal: str
    commands: Commands
    kadmin_container: str
    # to_camel turns "k8s" into "k8S"
    k8s_resources_prefix: str = Field(alias="k8sResourcesPrefix")
    admin_pwd: AdminPassword
    reconciler_interval: float
    operator_prefix: str
    crd_version: str
    parallel_secret_creation: bool

    @field_validator("reconciler_interval", mode="before")
    @classmethod
    def validate_interval(cls, v: Any) -> float:
        return parse_duration(v)


_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([a-z]*)\s*$")
_DURATION_UNITS = {
    "": 1,
    "s": 1,
    "sec": 1,
    "second": 1,
    "seconds": 1,
    "m": 60,
    "min": 60,
    "minute": 60,
    "minutes": 60,
    "h": 3600,
    "hour": 3600,
    "hours": 3600,
}


def parse_duration(value: Any) -> float:
    """Parse ``30``, ``"30s"`` or ``"1 minute"`` into seconds."""
    if isinstance(value, bool):
        raise ValueError(f"not a duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    match = _DURATION_RE.match(str(value).lower())
    if not match or match.group(2) not in _DURATION_UNITS:
        raise ValueError(f"not a duration: {value!r}")
    return float(match.group(1)) * _DURATION_UNITS[match.group(2)]


def _env_overlay(model: type, environ: Mapping[str, str], prefix: str) -> Dict[str, Any]:
    """Collect ``<prefix><FIELD>`` variables into a dict keyed by field alias.

    ``KRB_OPERATOR_ADMIN_PWD__SECRET_KEY=x`` -> ``{"adminPwd": {"secretKey": "x"}}``
    """
    overlay: Dict[str, Any] = {}
    for name, field in model.model_fields.items():
        env_name = f"{prefix}{name.upper()}"
        annotation = field.annotation
        if isinstance(annotation, type) and issubclass(annotation, BaseModel):
            nested = _env_overlay(annotation, environ, f"{env_name}__")
            if nested:
                overlay[field.alias] = nested
        elif env_name in environ:
            overlay[field.alias] = environ[env_name]
    return overlay


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> None:
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def _describe(e: ValidationError) -> str:
    return "; ".join(
        f"'{'.'.join(str(part) for part in err['loc'])}': {err['msg']}" for err in e.errors()
    )


def load_config(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> KrbOperatorConfig:
    """Load the operator configuration.

    Args:
        path: YAML file to read, defaults to ``$APP_CONFIG_PATH``
        environ: Environment overlay, defaults to ``os.environ``

    Raises:
        ConfigurationError: the file is missing or unreadable, or a required
            field is missing or has the wrong type
    """
    if environ is None:
        environ = os.environ
    if path is None:
        path = environ.get(C.CONFIG_PATH_ENV, C.DEFAULT_CONFIG_PATH)

    logger.info(f"Loading operator configuration from {path}")
    try:
        with open(path, "r") as f:
            document = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(f"Could not read configuration file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Could not parse configuration file {path}: {e}") from e

    if not isinstance(document, Mapping):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")
    raw = document.get("operator") or {}
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"'operator' in {path} must be a mapping")

    config_dict = dict(raw)
    _deep_merge(config_dict, _env_overlay(KrbOperatorConfig, environ, C.CONFIG_ENV_PREFIX))
    try:
        return KrbOperatorConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid operator configuration: {_describe(e)}") from e
