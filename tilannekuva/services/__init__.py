from .layers import Adapters, HistorySink, LayerService, build_layer_service

__all__ = ["Adapters", "HistorySink", "LayerService", "build_layer_service"]
