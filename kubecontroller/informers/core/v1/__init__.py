from kubecontroller.informers.core.v1.interface import V1Interface

__all__ = ["V1Interface"]
