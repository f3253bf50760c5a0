"""
Tests for model persistence.
"""

import os

import pytest
import torch
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tilebot.ai.model_store import FileModelStore, MemoryModelStore, ModelNotFoundError


def sample_weights():
    return {'layer.weight': torch.arange(6, dtype=torch.float32).reshape(2, 3),
            'layer.bias': torch.ones(2)}


def assert_same(a, b):
    assert a.keys() == b.keys()
    for name in a:
        assert torch.equal(a[name], b[name])


@pytest.fixture(params=['memory', 'file'])
def store(request, tmp_path):
    if request.param == 'memory':
        return MemoryModelStore()
    return FileModelStore(str(tmp_path / 'models'))


class TestModelStore:
    """Behaviour shared by every store."""

    def test_load_missing_raises(self, store):
        with pytest.raises(ModelNotFoundError) as exc_info:
            store.load('nope')
        assert exc_info.value.key == 'nope'
        assert isinstance(exc_info.value, KeyError)

    def test_save_then_load(self, store):
        weights = sample_weights()
        store.save('policy', weights)
        assert_same(store.load('policy'), weights)

    def test_exists(self, store):
        assert not store.exists('policy')
        store.save('policy', sample_weights())
        assert store.exists('policy')

    def test_save_overwrites(self, store):
        store.save('policy', sample_weights())
        updated = {k: v * 2 for k, v in sample_weights().items()}
        store.save('policy', updated)
        assert_same(store.load('policy'), updated)

    def test_saved_copy_is_independent(self, store):
        weights = sample_weights()
        store.save('policy', weights)
        weights['layer.bias'].fill_(5.0)
        assert torch.equal(store.load('policy')['layer.bias'], torch.ones(2))

    def test_keys(self, store):
        store.save('b', sample_weights())
        store.save('a', sample_weights())
        assert store.keys() == ['a', 'b']

    def test_metadata(self, store):
        store.save('policy', sample_weights(), {'steps': 12})
        assert store.metadata('policy')['steps'] == 12


class TestFileModelStore:
    """File-specific behaviour."""

    def test_file_layout(self, tmp_path):
        store = FileModelStore(str(tmp_path))
        store.save('policy', sample_weights(), {'epsilon': 0.5})
        path = tmp_path / 'policy.pth'
        assert path.exists()
        assert not (tmp_path / 'policy.pth.tmp').exists()

        checkpoint = torch.load(str(path), map_location='cpu', weights_only=True)
        assert 'policy_net_state_dict' in checkpoint
        assert checkpoint['metadata']['key'] == 'policy'
        assert 'timestamp' in checkpoint['metadata']

    def test_keys_of_missing_dir(self, tmp_path):
        assert FileModelStore(str(tmp_path / 'absent')).keys() == []

    @pytest.mark.parametrize("key", ['', '..', 'a/b', 'a\\b'])
    def test_invalid_keys_rejected(self, tmp_path, key):
        with pytest.raises(ValueError):
            FileModelStore(str(tmp_path)).save(key, sample_weights())
