from typing import Any, Dict, Optional

from kubernetes import client, config

from kubecontroller.api.source import KubernetesResourceSource
from kubecontroller.utils import utils
from kubecontroller.utils.logger import logger


class ControllerClient:
    """Client for the core API resources the controller watches"""

    def __init__(
        self,
        config_file: Optional[str] = None,
        config_dict: Optional[Dict[str, Any]] = None,
        context: Optional[str] = None,
        client_configuration: Optional[client.Configuration] = None,
        persist_config: bool = True,
        namespace: Optional[str] = None,
    ):
        """
        Controller client constructor
        :param config_file: kubeconfig file, defaults to ~/.kube/config
        :param config_dict: Takes the config file as a dict.
        :param context: kubernetes context
        :param client_configuration: kubernetes configuration object
        :param persist_config:
        :param namespace: restrict namespaced resources to this namespace
        """
        if config_file or config_dict or not utils.is_running_in_k8s():
            if config_dict:
                config.load_kube_config_from_dict(
                    config_dict=config_dict,
                    context=context,
                    client_configuration=None,
                    persist_config=persist_config,
                )
            else:
                config.load_kube_config(
                    config_file=config_file,
                    context=context,
                    client_configuration=client_configuration,
                    persist_config=persist_config,
                )
            logger.info(f"Loaded kubeconfig (context={context or 'current'})")
        else:
            config.load_incluster_config()
            logger.info("Loaded in-cluster configuration")
        self.core_api = client.CoreV1Api()
        self._source = KubernetesResourceSource(self.core_api, namespace=namespace)

    @property
    def source(self) -> KubernetesResourceSource:
        """Get the list/watch source backed by this client"""
        return self._source
