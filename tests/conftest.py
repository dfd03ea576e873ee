"""
Shared fixtures: an in-memory stand-in for the Kubernetes API and a
configured reconciliation engine on top of it.
"""
import base64
import functools
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

import pytest
from kubernetes.client.rest import ApiException

from krb_operator.config import AdminPassword, Commands, KeytabCommands, KrbOperatorConfig
from krb_operator.credentials import Secrets
from krb_operator.template import Template

NAMESPACE = "krb-ns"
KDC_NAME = "kdc-1"
REALM = "EXAMPLE.COM"


def _to_object(kind: str, body: Dict[str, Any], version: int) -> SimpleNamespace:
    meta = body.get("metadata", {})
    spec = body.get("spec", {})
    obj = SimpleNamespace(
        metadata=SimpleNamespace(
            name=meta["name"],
            namespace=meta["namespace"],
            labels=meta.get("labels", {}),
            owner_references=meta.get("ownerReferences"),
            resource_version=str(version),
        ),
        body=body,
    )
    if kind == "deployment":
        obj.spec = SimpleNamespace(replicas=spec.get("replicas"))
        obj.status = SimpleNamespace(replicas=None, available_replicas=None)
    elif kind == "service":
        obj.spec = SimpleNamespace(cluster_ip=spec.get("clusterIP") or "10.96.0.10")
    elif kind == "secret":
        obj.data = dict(body.get("data") or {})
    elif kind == "pod":
        obj.status = SimpleNamespace(phase=body.get("status", {}).get("phase", "Running"))
    return obj


class FakeKubeApi:
    """Serves ``<verb>_namespaced_<kind>[_with_http_info]`` from a dict.

    Writes return ``(object, status, headers)`` like the generated client.
    Failures are injected per ``(verb, kind)`` through ``errors`` (raised) and
    ``statuses`` (returned instead of the normal status).
    """

    VERBS = ("read", "create", "replace", "delete", "list")

    def __init__(self):
        self.objects: Dict[Tuple[str, str, str], SimpleNamespace] = {}
        self.calls: List[Tuple[str, str, str]] = []
        self.errors: Dict[Tuple[str, str], List[Exception]] = {}
        self.statuses: Dict[Tuple[str, str], int] = {}
        self.ready_after: Dict[Tuple[str, str], int] = {}
        self._version = 0

    def __getattr__(self, attr: str):
        for verb in self.VERBS:
            prefix = f"{verb}_namespaced_"
            if attr.startswith(prefix):
                kind = attr[len(prefix):]
                if kind.endswith("_with_http_info"):
                    kind = kind[: -len("_with_http_info")]
                return functools.partial(getattr(self, f"_{verb}"), kind)
        raise AttributeError(attr)

    def fail(
        self, verb: str, kind: str, status: int = 500, times: int = 1, error: Optional[Exception] = None
    ) -> None:
        self.errors.setdefault((verb, kind), []).extend(
            error or ApiException(status=status, reason="Injected") for _ in range(times)
        )

    def _maybe_fail(self, verb: str, kind: str) -> None:
        pending = self.errors.get((verb, kind))
        if pending:
            raise pending.pop(0)

    def _status(self, verb: str, kind: str, default: int) -> int:
        return self.statuses.get((verb, kind), default)

    def _next_version(self) -> int:
        self._version += 1
        return self._version

    def _read(self, kind: str, name: str, namespace: str) -> SimpleNamespace:
        self.calls.append(("read", kind, name))
        self._maybe_fail("read", kind)
        obj = self.objects.get((kind, namespace, name))
        if obj is None:
            raise ApiException(status=404, reason="Not Found")
        remaining = self.ready_after.get((namespace, name))
        if kind == "deployment" and remaining is not None:
            if remaining <= 1:
                del self.ready_after[(namespace, name)]
                self.set_deployment_status(namespace, name, obj.spec.replicas, obj.spec.replicas)
            else:
                self.ready_after[(namespace, name)] = remaining - 1
        return obj

    def _list(self, kind: str, namespace: str, label_selector: str = "") -> SimpleNamespace:
        self.calls.append(("list", kind, label_selector))
        wanted = dict(part.split("=", 1) for part in label_selector.split(",") if part)
        items = [
            obj for (k, ns, _), obj in self.objects.items()
            if k == kind and ns == namespace
            and all(obj.metadata.labels.get(key) == value for key, value in wanted.items())
        ]
        return SimpleNamespace(items=items)

    def _create(self, kind: str, namespace: str, body: Dict[str, Any]):
        name = body["metadata"]["name"]
        self.calls.append(("create", kind, name))
        self._maybe_fail("create", kind)
        if (kind, namespace, name) in self.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        obj = _to_object(kind, body, self._next_version())
        self.objects[(kind, namespace, name)] = obj
        return obj, self._status("create", kind, 201), {}

    def _replace(self, kind: str, name: str, namespace: str, body: Dict[str, Any]):
        self.calls.append(("replace", kind, name))
        self._maybe_fail("replace", kind)
        current = self.objects.get((kind, namespace, name))
        if current is None:
            raise ApiException(status=404, reason="Not Found")
        if body["metadata"].get("resourceVersion") != current.metadata.resource_version:
            raise ApiException(status=409, reason="Conflict")
        obj = _to_object(kind, body, self._next_version())
        if kind == "deployment":
            obj.status = current.status
        self.objects[(kind, namespace, name)] = obj
        return obj, self._status("replace", kind, 200), {}

    def _delete(self, kind: str, name: str, namespace: str):
        self.calls.append(("delete", kind, name))
        self._maybe_fail("delete", kind)
        if self.objects.pop((kind, namespace, name), None) is None:
            raise ApiException(status=404, reason="Not Found")
        return SimpleNamespace(status="Success"), self._status("delete", kind, 200), {}

    # Test helpers

    def get(self, kind: str, namespace: str, name: str) -> Optional[SimpleNamespace]:
        return self.objects.get((kind, namespace, name))

    def count(self, kind: str) -> int:
        return sum(1 for (k, _, _) in self.objects if k == kind)

    def put(self, kind: str, body: Dict[str, Any]) -> SimpleNamespace:
        meta = body["metadata"]
        obj = _to_object(kind, body, self._next_version())
        self.objects[(kind, meta["namespace"], meta["name"])] = obj
        return obj

    def put_secret(self, namespace: str, name: str, data: Dict[str, str]) -> SimpleNamespace:
        encoded = {k: base64.b64encode(v.encode()).decode() for k, v in data.items()}
        return self.put("secret", {"metadata": {"name": name, "namespace": namespace}, "data": encoded})

    def set_deployment_status(self, namespace: str, name: str, replicas, available) -> None:
        obj = self.objects[("deployment", namespace, name)]
        obj.status = SimpleNamespace(replicas=replicas, available_replicas=available)


@pytest.fixture
def cfg() -> KrbOperatorConfig:
    return KrbOperatorConfig(
        krb5_image="alexeyn/kerberos:0.5",
        admin_principal="admin/admin",
        commands=Commands(
            add_principal='kadmin.local -q "addprinc -pw $password $username"',
            add_keytab=KeytabCommands(
                random_key='kadmin.local -q "ktadd -k $path $username"',
                no_random_key='kadmin.local -q "ktadd -norandkey -k $path $username"',
            ),
        ),
        kadmin_container="kadmin",
        k8s_resources_prefix="krb",
        admin_pwd=AdminPassword(secret_name="krb-admin-pwd", secret_key="krb5_pass"),
        reconciler_interval=30.0,
        operator_prefix="krb-operator.novakov-alexey.github.io",
        crd_version="v1",
        parallel_secret_creation=False,
    )


@pytest.fixture
def api() -> FakeKubeApi:
    return FakeKubeApi()


@pytest.fixture
def clients(api) -> Dict[str, Any]:
    return {"core": api, "apps": api}


@pytest.fixture
def secrets(clients, cfg) -> Secrets:
    return Secrets(clients, cfg)


@pytest.fixture
def template(clients, secrets, cfg) -> Template:
    template = Template(clients, secrets, cfg)
    template.poll_interval = 0.01
    return template
