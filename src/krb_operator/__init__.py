"""Kubernetes operator managing Kerberos KDC instances."""

__version__ = "0.1.0"
