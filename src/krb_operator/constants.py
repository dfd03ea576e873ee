"""Default values and constants for krb-operator."""

import os
import re

# API Group and default version, the watched version comes from crdVersion
API_GROUP = "krb-operator.novakov-alexey.github.io"
API_VERSION = "v1"
PLURAL = "kdcs"
KIND = "Kdc"

# Operator name
OPERATOR_NAME = "krb-operator"

# =============================================================================
# Configuration
# =============================================================================

CONFIG_PATH_ENV = "APP_CONFIG_PATH"
DEFAULT_CONFIG_PATH = "config/application.yaml"
CONFIG_ENV_PREFIX = "KRB_OPERATOR_"

# =============================================================================
# Readiness
# =============================================================================

# Fixed wait window for a KDC deployment to converge
DEPLOYMENT_TIMEOUT = 60.0

# Fixed interval between readiness checks
POLL_INTERVAL = float(os.getenv("KRB_OPERATOR_POLL_INTERVAL", "1.0"))

# =============================================================================
# Template parameters
# =============================================================================

PREFIX_PARAM = "PREFIX"
ADMIN_PWD_PARAM = "ADMIN_PWD"
KDC_SERVER_PARAM = "KDC_SERVER"
KRB_REALM_PARAM = "KRB5_REALM"
KRB5_IMAGE_PARAM = "KRB5_IMAGE"
DEPLOYMENT_SELECTOR = "deployment"
RUN_MODE_PARAM = "RUN_MODE"
KDC_HOST_PARAM = "KRB5_KDC"

# Database directory of the image, shared by the kdc and kadmin containers
KDC_DATA_DIR = "/var/kerberos/krb5kdc"

# =============================================================================
# Ports
# =============================================================================

KDC_PORT = 88
KPASSWD_PORT = 464
KADMIN_PORT = 749

# =============================================================================
# Resources
# =============================================================================

DEFAULT_CPU_REQUEST = os.getenv("DEFAULT_CPU_REQUEST", "100m")
DEFAULT_MEMORY_REQUEST = os.getenv("DEFAULT_MEMORY_REQUEST", "128Mi")
DEFAULT_CPU_LIMIT = os.getenv("DEFAULT_CPU_LIMIT", "500m")
DEFAULT_MEMORY_LIMIT = os.getenv("DEFAULT_MEMORY_LIMIT", "256Mi")

# =============================================================================
# Labels
# =============================================================================

LABEL_NAME = "app.kubernetes.io/name"
LABEL_INSTANCE = "app.kubernetes.io/instance"
LABEL_COMPONENT = "app.kubernetes.io/component"
LABEL_MANAGED_BY = "app.kubernetes.io/managed-by"

# =============================================================================
# kadmin
# =============================================================================

# kadmin failures read "<request>: <reason> while <action>"
KADMIN_FAILURE_RE = re.compile(r"^[\w.-]+: .* while ", re.MULTILINE)
KADMIN_ALREADY_EXISTS = "already exists"

# Scratch directory in the kadmin container for exported keytabs
KEYTAB_DIR = "/tmp"
DEFAULT_KEYTAB_KEY = "keytab"
