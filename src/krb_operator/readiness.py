"""Readiness predicate for KDC deployments."""

from typing import Any


def is_deployment_ready(deployment: Any) -> bool:
    """Check whether a Deployment has converged.

    Ready means the declared replica count equals the observed count and at
    least that many replicas are available. Objects still being populated by
    the API server may lack ``spec``/``status`` or any of the counts; those are
    simply not ready yet.
    """
    spec = getattr(deployment, "spec", None)
    status = getattr(deployment, "status", None)
    if spec is None or status is None:
        return False

    replicas = spec.replicas
    status_replicas = status.replicas
    available_replicas = status.available_replicas
    if replicas is None or status_replicas is None or available_replicas is None:
        return False

    return replicas == status_replicas and replicas <= available_replicas
