"""Core building blocks: layers, activations, loss, optimizer, initializers."""

from .activations import relu, relu_backward, softmax
from .conv import Conv1DLayer
from .initializers import get_initializer, he_init, xavier_init
from .layer import DenseLayer, Layer
from .losses import CrossEntropyLoss, one_hot
from .optimizers import SGD, clip_by_norm

__all__ = [
    "relu", "relu_backward", "softmax",
    "Layer", "DenseLayer", "Conv1DLayer",
    "CrossEntropyLoss", "one_hot",
    "SGD", "clip_by_norm",
    "he_init", "xavier_init", "get_initializer",
]
