from kubecontroller.informers.core.core_informer import CoreInformer

__all__ = ["CoreInformer"]
