"""Resource builders for Kdc managed resources."""

import base64
import re
from typing import Any, Dict, Optional

from . import constants as C
from .config import KrbOperatorConfig


def build_labels(name: str, component: str) -> Dict[str, str]:
    """Build standard labels for a resource."""
    return {
        C.LABEL_NAME: name,
        C.LABEL_INSTANCE: name,
        C.LABEL_COMPONENT: component,
        C.LABEL_MANAGED_BY: C.OPERATOR_NAME,
    }


def build_owner_reference(owner: Dict[str, Any]) -> Dict[str, Any]:
    """Build owner reference for garbage collection."""
    return {
        "apiVersion": owner.get("apiVersion", f"{C.API_GROUP}/{C.API_VERSION}"),
        "kind": C.KIND,
        "name": owner["metadata"]["name"],
        "uid": owner["metadata"]["uid"],
        "controller": True,
    }


def build_selector(name: str) -> Dict[str, str]:
    """Labels shared by the KDC pods and the Service selecting them."""
    return {C.DEPLOYMENT_SELECTOR: name}


def kdc_server(name: str, namespace: str) -> str:
    """In-cluster DNS name of the KDC service."""
    return f"{name}.{namespace}.svc.cluster.local"


def build_service(name: str, namespace: str) -> Dict[str, Any]:
    """Build Service exposing the KDC, kpasswd and kadmin ports."""
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": build_labels(name, "kdc"),
        },
        "spec": {
            "selector": build_selector(name),
            "ports": [
                {"name": "kerberos-kdc-tcp", "port": C.KDC_PORT, "targetPort": C.KDC_PORT, "protocol": "TCP"},
                {"name": "kerberos-kdc", "port": C.KDC_PORT, "targetPort": C.KDC_PORT, "protocol": "UDP"},
                {"name": "kpasswd-tcp", "port": C.KPASSWD_PORT, "targetPort": C.KPASSWD_PORT, "protocol": "TCP"},
                {"name": "kpasswd", "port": C.KPASSWD_PORT, "targetPort": C.KPASSWD_PORT, "protocol": "UDP"},
                {"name": "kadmin", "port": C.KADMIN_PORT, "targetPort": C.KADMIN_PORT, "protocol": "TCP"},
            ],
            "type": "ClusterIP",
        },
    }


def _container(name: str, run_mode: str, env, ports, probe_port: int, cfg: KrbOperatorConfig) -> Dict[str, Any]:
    # No command override, the image entrypoint writes krb5.conf and creates
    # the realm database from the environment before starting the server
    return {
        "name": name,
        "image": cfg.krb5_image,
        "imagePullPolicy": "IfNotPresent",
        "env": env + [{"name": C.RUN_MODE_PARAM, "value": run_mode}],
        "ports": ports,
        "readinessProbe": {
            "tcpSocket": {"port": probe_port},
            "initialDelaySeconds": 5,
            "periodSeconds": 5,
        },
        "volumeMounts": [{"name": "kdc-data", "mountPath": C.KDC_DATA_DIR}],
        "resources": {
            "requests": {"cpu": C.DEFAULT_CPU_REQUEST, "memory": C.DEFAULT_MEMORY_REQUEST},
            "limits": {"cpu": C.DEFAULT_CPU_LIMIT, "memory": C.DEFAULT_MEMORY_LIMIT},
        },
    }


def build_deployment(name: str, namespace: str, realm: str, cfg: KrbOperatorConfig) -> Dict[str, Any]:
    """Build Deployment running the KDC and kadmin servers.

    Both containers share the Kerberos database volume. The admin password is
    read from the per-KDC admin Secret.
    """
    admin_secret = admin_secret_name(name, cfg)
    env = [
        {"name": C.KRB_REALM_PARAM, "value": realm},
        {"name": C.KDC_SERVER_PARAM, "value": kdc_server(name, namespace)},
        # Both servers run in the same pod
        {"name": C.KDC_HOST_PARAM, "value": "localhost"},
        {"name": C.PREFIX_PARAM, "value": cfg.k8s_resources_prefix},
        {"name": "KRB5_ADMIN_PRINCIPAL", "value": cfg.admin_principal},
        {
            "name": "KRB5_PASS",
            "valueFrom": {
                "secretKeyRef": {
                    "name": admin_secret,
                    "key": cfg.admin_pwd.secret_key,
                }
            },
        },
    ]
    pod_labels = {**build_labels(name, "kdc"), **build_selector(name)}

    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": build_labels(name, "kdc"),
        },
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": build_selector(name)},
            "strategy": {"type": "Recreate"},
            "template": {
                "metadata": {"labels": pod_labels},
                "spec": {
                    "containers": [
                        _container(
                            f"{cfg.k8s_resources_prefix}-kdc",
                            "kdc",
                            env,
                            [
                                {"containerPort": C.KDC_PORT, "protocol": "TCP", "name": "kdc-tcp"},
                                {"containerPort": C.KDC_PORT, "protocol": "UDP", "name": "kdc-udp"},
                            ],
                            C.KDC_PORT,
                            cfg,
                        ),
                        _container(
                            cfg.kadmin_container,
                            "kadmin",
                            env,
                            [
                                {"containerPort": C.KADMIN_PORT, "protocol": "TCP", "name": "kadmin"},
                                {"containerPort": C.KPASSWD_PORT, "protocol": "TCP", "name": "kpasswd-tcp"},
                                {"containerPort": C.KPASSWD_PORT, "protocol": "UDP", "name": "kpasswd-udp"},
                            ],
                            C.KADMIN_PORT,
                            cfg,
                        ),
                    ],
                    "volumes": [
                        {"name": "kdc-data", "emptyDir": {}},
                    ],
                },
            },
        },
    }


def admin_secret_name(name: str, cfg: KrbOperatorConfig) -> str:
    """Name of the Secret holding the admin password of one KDC."""
    return f"{name}-{cfg.admin_pwd.secret_name}"


def build_secret(
    name: str,
    namespace: str,
    data: Dict[str, str],
    component: str,
    owner: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build an Opaque Secret from already base64 encoded ``data``.

    Secrets with an owner are garbage collected together with their Kdc.
    """
    metadata: Dict[str, Any] = {
        "name": name,
        "namespace": namespace,
        "labels": build_labels(name, component),
    }
    if owner is not None:
        metadata["ownerReferences"] = [build_owner_reference(owner)]
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": metadata,
        "type": "Opaque",
        "data": dict(data),
    }


def build_password_secret(
    name: str,
    namespace: str,
    key: str,
    password: str,
    component: str,
    owner: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build an Opaque Secret holding a single password."""
    encoded = base64.b64encode(password.encode("utf-8")).decode("ascii")
    return build_secret(name, namespace, {key: encoded}, component, owner)


def principal_secret_name(kdc_name: str, principal: str) -> str:
    """Default Secret name for a principal password, DNS-1123 safe."""
    safe = re.sub(r"[^a-z0-9-]+", "-", principal.lower()).strip("-")
    return f"{kdc_name}-{safe}-pwd"
