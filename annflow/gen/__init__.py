"""Generative models."""

from .base import Generator
from .gan import GenerativeAdversarialNetwork
from .nf import NormalizingFlow

__all__ = ["GenerativeAdversarialNetwork", "Generator", "NormalizingFlow"]
