"""CRD schema constants and helpers."""

# CRD Group, Version, and Kind
GROUP = "solr.apache.org"
VERSION = "v1beta1"
PLURAL = "solrclouds"
KIND = "SolrCloud"

# API version string
API_VERSION = f"{GROUP}/{VERSION}"

# Labels carried by every generated object
SOLR_CLOUD_LABEL = "solr-cloud"
TECHNOLOGY_LABEL = "technology"
SOLR_TECHNOLOGY = "solr-cloud"

# Labels for the data volume claim
PVC_TECHNOLOGY_LABEL = "solr.apache.org/technology"
PVC_STORAGE_LABEL = "solr.apache.org/storage"
PVC_INSTANCE_LABEL = "solr.apache.org/instance"
PVC_DATA_STORAGE = "data"

# Annotations
ZK_CONNECTION_STRING_ANNOTATION = "solr.apache.org/zkConnectionString"
SOLR_XML_MD5_ANNOTATION = "solr.apache.org/solrXmlMd5"
LOG_XML_MD5_ANNOTATION = "solr.apache.org/logXmlMd5"
BASIC_AUTH_MD5_ANNOTATION = "solr.apache.org/basicAuthMd5"
TLS_CERT_MD5_ANNOTATION = "solr.apache.org/tlsCertMd5"
EXTERNAL_DNS_HOSTNAME_ANNOTATION = "external-dns.alpha.kubernetes.io/hostname"
INGRESS_BACKEND_PROTOCOL_ANNOTATION = "nginx.ingress.kubernetes.io/backend-protocol"
INGRESS_SSL_REDIRECT_ANNOTATION = "nginx.ingress.kubernetes.io/ssl-redirect"

# Files
SOLR_XML_FILE = "solr.xml"
LOG_XML_FILE = "log4j2.xml"
SECURITY_JSON_FILE = "security.json"

# Containers and ports
SOLR_NODE_CONTAINER = "solrcloud-node"
SOLR_CLIENT_PORT_NAME = "solr-client"
SOLR_XML_VOLUME = "solr-xml"
DATA_VOLUME = "data"
SOLR_HOME = "/var/solr/data"
DEFAULT_PROBE_PATH = "/admin/info/system"

DEFAULT_SOLR_USER = 8983
DEFAULT_SOLR_GROUP = 8983
DEFAULT_TERMINATION_GRACE_PERIOD = 60

# Defaults
DEFAULT_REPLICAS = 3
DEFAULT_SOLR_REPOSITORY = "library/solr"
DEFAULT_SOLR_TAG = "8.11"
DEFAULT_BUSYBOX_REPOSITORY = "library/busybox"
DEFAULT_BUSYBOX_TAG = "1.28.0-glibc"
DEFAULT_PULL_POLICY = "IfNotPresent"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_POD_PORT = 8983
DEFAULT_COMMON_SERVICE_PORT = 80
DEFAULT_INGRESS_NODE_PORT = 80
DEFAULT_INGRESS_TLS_NODE_PORT = 443
DEFAULT_CHROOT = "/"
DEFAULT_POD_MANAGEMENT_POLICY = "Parallel"

# Basic auth
DEFAULT_BASIC_AUTH_USERNAME = "k8s-oper"
BASIC_AUTH_SECRET_TYPE = "kubernetes.io/basic-auth"
BASIC_AUTH_USERNAME_KEY = "username"
BASIC_AUTH_PASSWORD_KEY = "password"

# Allowed values
ADDRESSABILITY_METHODS = ["Ingress", "ExternalDNS"]
UPDATE_METHODS = ["Managed", "StatefulSet", "Manual"]
CLIENT_AUTH_LEVELS = ["None", "Want", "Need"]

# Permissions for mounted configmaps and secrets
PUBLIC_READ_ONLY_PERMISSIONS = 0o444
SECRET_READ_ONLY_PERMISSIONS = 0o440
