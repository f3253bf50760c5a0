"""
Model Store
===========

Key-addressed persistence for network weights.

    store.save(key, weights)      # weights: a state_dict
    weights = store.load(key)     # raises ModelNotFoundError when absent

Implementations:
    FileModelStore   - one torch checkpoint per key under a directory
    MemoryModelStore - in-process dictionary (tests, embedding)
"""

import copy
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

import torch

from ..utils.logger import get_logger

logger = get_logger(__name__)

Weights = Dict[str, torch.Tensor]


class ModelNotFoundError(KeyError):
    """Raised when no model is stored under the requested key."""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"No model stored under key '{self.key}'"


class ModelStore(ABC):
    """Interface for key-addressed weight storage."""

    @abstractmethod
    def save(self, key: str, weights: Weights, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Store ``weights`` under ``key``, replacing any previous entry."""

    @abstractmethod
    def load(self, key: str) -> Weights:
        """
        Return the weights stored under ``key``.

        Raises:
            ModelNotFoundError: If nothing is stored under ``key``
        """

    def exists(self, key: str) -> bool:
        try:
            self.load(key)
        except ModelNotFoundError:
            return False
        return True


def _detach(weights: Weights) -> Weights:
    """CPU copies of every tensor, so the caller's network can keep training."""
    return {name: tensor.detach().cpu().clone() for name, tensor in weights.items()}


class MemoryModelStore(ModelStore):
    """Keeps weights in a dictionary. Safe to use from several threads."""

    def __init__(self):
        self._models: Dict[str, Weights] = {}
        self._metadata: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def save(self, key: str, weights: Weights, metadata: Optional[Dict[str, Any]] = None) -> None:
        snapshot = _detach(weights)
        with self._lock:
            self._models[key] = snapshot
            self._metadata[key] = dict(metadata or {})

    def load(self, key: str) -> Weights:
        with self._lock:
            if key not in self._models:
                raise ModelNotFoundError(key)
            return _detach(self._models[key])

    def metadata(self, key: str) -> Dict[str, Any]:
        with self._lock:
            if key not in self._metadata:
                raise ModelNotFoundError(key)
            return copy.deepcopy(self._metadata[key])

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._models)


class FileModelStore(ModelStore):
    """
    Stores each key as ``<model_dir>/<key>.pth``.

    Checkpoint layout:
        policy_net_state_dict - network weights
        metadata              - timestamp, key and caller-supplied fields
    """

    EXTENSION = '.pth'

    def __init__(self, model_dir: str = 'models'):
        self.model_dir = model_dir

    def path_for(self, key: str) -> str:
        if not key or key in ('.', '..') or '/' in key or '\\' in key:
            raise ValueError(f"Invalid model key: {key!r}")
        return os.path.join(self.model_dir, f"{key}{self.EXTENSION}")

    def save(self, key: str, weights: Weights, metadata: Optional[Dict[str, Any]] = None) -> None:
        filepath = self.path_for(key)
        os.makedirs(self.model_dir, exist_ok=True)

        checkpoint = {
            'policy_net_state_dict': _detach(weights),
            'metadata': {
                'timestamp': datetime.now().isoformat(),
                'key': key,
                **(metadata or {}),
            },
        }

        # Write to a temp file first so a crash never leaves a truncated model
        tmp_path = filepath + '.tmp'
        torch.save(checkpoint, tmp_path)
        os.replace(tmp_path, filepath)

        size_kb = os.path.getsize(filepath) / 1024
        logger.debug(f"Saved {filepath} ({size_kb:.1f} KB)")

    def _read(self, key: str) -> Dict[str, Any]:
        filepath = self.path_for(key)
        if not os.path.exists(filepath):
            raise ModelNotFoundError(key)
        return torch.load(filepath, map_location='cpu', weights_only=True)

    def load(self, key: str) -> Weights:
        return self._read(key)['policy_net_state_dict']

    def metadata(self, key: str) -> Dict[str, Any]:
        return self._read(key).get('metadata', {})

    def exists(self, key: str) -> bool:
        return os.path.exists(self.path_for(key))

    def keys(self) -> List[str]:
        """Keys of every stored model, sorted."""
        if not os.path.isdir(self.model_dir):
            return []
        return sorted(
            name[:-len(self.EXTENSION)]
            for name in os.listdir(self.model_dir)
            if name.endswith(self.EXTENSION)
        )
