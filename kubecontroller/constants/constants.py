# Core resource types watched by the controller
RESOURCE_NODE = "node"
RESOURCE_POD = "pod"
RESOURCE_SERVICE = "service"
CORE_RESOURCE_TYPES = (RESOURCE_NODE, RESOURCE_POD, RESOURCE_SERVICE)

# Cluster-scoped resources carry no namespace in their identity
CLUSTER_SCOPED_RESOURCE_TYPES = frozenset({RESOURCE_NODE})

# K8S watch event types
WATCH_EVENT_ADDED = "ADDED"
WATCH_EVENT_MODIFIED = "MODIFIED"
WATCH_EVENT_DELETED = "DELETED"
WATCH_EVENT_BOOKMARK = "BOOKMARK"
WATCH_EVENT_ERROR = "ERROR"

# HTTP status the API server uses for an expired resource version
HTTP_GONE = 410

# Service port fan-out modes for derived events
PORT_MODE_FIRST = "first"
PORT_MODE_ALL = "all"
PORT_MODES = (PORT_MODE_FIRST, PORT_MODE_ALL)

# Index names
NAMESPACE_INDEX = "namespace"

ENV_PREFIX = "KUBECONTROLLER_"

# Defaults
DEFAULT_WORKERS = 1
DEFAULT_QUEUE_SIZE = 1024
DEFAULT_WATCH_TIMEOUT_SECONDS = 300
DEFAULT_RECONNECT_BACKOFF_SECONDS = 1.0
DEFAULT_RECONNECT_BACKOFF_MAX_SECONDS = 30.0
DEFAULT_MAX_RECONNECT_ATTEMPTS = 5
DEFAULT_SYNC_TIMEOUT_SECONDS = 120.0
DEFAULT_STOP_TIMEOUT_SECONDS = 10.0
DEFAULT_HEALTH_CHECK_TIMEOUT_SECONDS = 10.0
DEFAULT_EMITTER_BUFFER = 256
DEFAULT_EMITTER_SEND_TIMEOUT_SECONDS = 5.0
DEFAULT_WEBHOOK_TIMEOUT_SECONDS = 10.0

# Outbound channel name used in log lines
EMITTER_CHANNEL_NAME = "kube-out"
