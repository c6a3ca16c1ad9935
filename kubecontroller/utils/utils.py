import os

SERVICE_ACCOUNT_DIR = "/var/run/secrets/kubernetes.io/serviceaccount"


def is_running_in_k8s() -> bool:
    """Return True when the process runs inside a Kubernetes pod."""
    return os.path.isdir(SERVICE_ACCOUNT_DIR)
