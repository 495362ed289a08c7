"""
test_model_store.py
~~~~~~~~~~~~~~~~~~~

Unit tests for SQLite-based network storage.
"""

import os
import sqlite3

import numpy as np
import pytest

from letternet.dataset import xor_training_set
from letternet.errors import NonConvergence
from letternet.network import Network
from letternet.trainer import Trainer
from letternet.model_store import (
    save_network,
    load_network,
    list_saved_networks,
    delete_network,
    get_network_metadata,
    delete_old_networks,
    ModelStore
)


@pytest.fixture
def temp_db_dir(tmp_path):
    """Create a temporary directory for database storage."""
    db_dir = tmp_path / "test_models"
    db_dir.mkdir()
    return str(db_dir)


@pytest.fixture
def simple_network():
    """Create a small 3-4-2 network."""
    return Network(3, 4, 2, rng=0)


@pytest.fixture
def trained_network():
    """Create a 2-3-1 network with a few epochs of XOR training applied."""
    net = Network(2, 3, 1, rng=1)
    with pytest.raises(NonConvergence):
        Trainer(net, max_epochs=5).train(*xor_training_set(), 0.0)
    return net


def age_network(db_dir, network_id, modifier):
    """Move the created_at time of a stored network into the past."""
    conn = sqlite3.connect(os.path.join(db_dir, "networks.db"))
    conn.execute(
        "UPDATE networks SET created_at = datetime('now', ?) WHERE network_id = ?",
        (modifier, network_id)
    )
    conn.commit()
    conn.close()


@pytest.mark.unit
class TestModelStore:
    """Test basic storage operations."""

    def test_save_network_creates_database(self, simple_network, temp_db_dir):
        """Test that saving a network creates the database file."""
        success = save_network(simple_network, "net_1", model_dir=temp_db_dir, trained=False)

        assert success is True
        assert os.path.exists(f"{temp_db_dir}/networks.db")

    def test_save_network_with_metadata(self, trained_network, temp_db_dir):
        """Test that training results are saved with the network."""
        save_network(
            trained_network,
            "trained_1",
            model_dir=temp_db_dir,
            trained=True,
            final_error=0.25,
            epochs=5
        )

        metadata = get_network_metadata("trained_1", temp_db_dir)
        assert metadata is not None
        assert metadata['network_id'] == "trained_1"
        assert metadata['trained'] is True
        assert metadata['final_error'] == 0.25
        assert metadata['epochs'] == 5
        assert metadata['architecture'] == [2, 3, 1]
        assert metadata['weights_shape'] == [[2, 3], [3, 1]]

    def test_load_preserves_weights(self, trained_network, temp_db_dir):
        """Test that loaded weights are identical to the saved ones."""
        save_network(trained_network, "net_2", model_dir=temp_db_dir)
        loaded = load_network("net_2", temp_db_dir)

        assert isinstance(loaded, Network)
        assert loaded.shape == trained_network.shape
        assert np.array_equal(loaded.weights_kj, trained_network.weights_kj)
        assert np.array_equal(loaded.weights_ji, trained_network.weights_ji)

    def test_load_nonexistent_network(self, temp_db_dir):
        assert load_network("nonexistent", temp_db_dir) is None

    def test_load_corrupt_weights(self, simple_network, temp_db_dir):
        """Test that unreadable stored weights give None."""
        save_network(simple_network, "corrupt", model_dir=temp_db_dir)
        conn = sqlite3.connect(os.path.join(temp_db_dir, "networks.db"))
        conn.execute("UPDATE networks SET weights = '1,2,3,' WHERE network_id = 'corrupt'")
        conn.commit()
        conn.close()

        assert load_network("corrupt", temp_db_dir) is None

    def test_invalid_network_id(self, simple_network, temp_db_dir):
        assert save_network(simple_network, "", model_dir=temp_db_dir) is False
        assert load_network("", temp_db_dir) is None
        assert delete_network("", temp_db_dir) is False
        assert get_network_metadata("", temp_db_dir) is None

    def test_negative_error_rejected(self, simple_network, temp_db_dir):
        assert save_network(
            simple_network, "bad", model_dir=temp_db_dir, final_error=-1.0
        ) is False

    def test_list_saved_networks_empty(self, temp_db_dir):
        assert list_saved_networks(temp_db_dir) == []

    def test_list_saved_networks(self, simple_network, temp_db_dir):
        """Test that listing returns every network with its metadata."""
        save_network(simple_network, "net1", model_dir=temp_db_dir, final_error=0.1)
        save_network(simple_network, "net2", model_dir=temp_db_dir, trained=False)

        networks = list_saved_networks(temp_db_dir)

        assert len(networks) == 2
        assert {net['network_id'] for net in networks} == {"net1", "net2"}
        for net in networks:
            assert net['architecture'] == [3, 4, 2]
            assert 'created_at' in net
            assert 'updated_at' in net

    def test_delete_network(self, simple_network, temp_db_dir):
        """Test that a deleted network cannot be loaded."""
        save_network(simple_network, "delete_me", model_dir=temp_db_dir)
        assert load_network("delete_me", temp_db_dir) is not None

        assert delete_network("delete_me", temp_db_dir) is True
        assert load_network("delete_me", temp_db_dir) is None

    def test_delete_nonexistent_network(self, temp_db_dir):
        assert delete_network("nonexistent", temp_db_dir) is False

    def test_update_network(self, simple_network, temp_db_dir):
        """Test that saving with the same id updates the row."""
        save_network(simple_network, "update", model_dir=temp_db_dir, trained=False)
        assert get_network_metadata("update", temp_db_dir)['trained'] is False

        simple_network.weights_ji = np.zeros((4, 2))
        save_network(simple_network, "update", model_dir=temp_db_dir,
                     trained=True, final_error=0.05)

        metadata = get_network_metadata("update", temp_db_dir)
        assert metadata['trained'] is True
        assert metadata['final_error'] == 0.05
        assert np.all(load_network("update", temp_db_dir).weights_ji == 0)
        assert len(list_saved_networks(temp_db_dir)) == 1

    def test_update_keeps_created_at(self, simple_network, temp_db_dir):
        """Test that an update does not reset the network's age."""
        save_network(simple_network, "aged", model_dir=temp_db_dir)
        age_network(temp_db_dir, "aged", '-3 days')
        save_network(simple_network, "aged", model_dir=temp_db_dir)

        assert delete_old_networks(days=2, model_dir=temp_db_dir) == 1


@pytest.mark.unit
class TestDeleteOldNetworks:
    """Tests for removing old networks."""

    def test_delete_old_networks_mixed_ages(self, simple_network, temp_db_dir):
        """Test with a mix of old and recent networks."""
        old_ids = ["old_1", "old_2"]
        recent_ids = ["recent_1", "recent_2"]
        for network_id in old_ids + recent_ids:
            save_network(simple_network, network_id, model_dir=temp_db_dir)
        for network_id in old_ids:
            age_network(temp_db_dir, network_id, '-3 days')

        assert delete_old_networks(days=2, model_dir=temp_db_dir) == len(old_ids)
        for network_id in old_ids:
            assert load_network(network_id, temp_db_dir) is None
        for network_id in recent_ids:
            assert load_network(network_id, temp_db_dir) is not None

    def test_delete_old_networks_custom_days(self, simple_network, temp_db_dir):
        save_network(simple_network, "five_days", model_dir=temp_db_dir)
        age_network(temp_db_dir, "five_days", '-5 days')

        assert delete_old_networks(days=7, model_dir=temp_db_dir) == 0
        assert delete_old_networks(days=3, model_dir=temp_db_dir) == 1

    def test_delete_old_networks_empty_db(self, temp_db_dir):
        assert delete_old_networks(days=2, model_dir=temp_db_dir) == 0

    def test_delete_old_networks_negative_days(self, temp_db_dir):
        with pytest.raises(ValueError) as exc_info:
            delete_old_networks(days=-1, model_dir=temp_db_dir)
        assert "non-negative" in str(exc_info.value)

    def test_store_method_directly(self, temp_db_dir):
        """Test ModelStore.delete_old_networks_from_db directly."""
        store = ModelStore(db_path=os.path.join(temp_db_dir, "networks.db"))
        store.save_network_to_db(Network(2, 2, 1), "direct", trained=False)
        age_network(temp_db_dir, "direct", '-1 hour')

        assert store.delete_old_networks_from_db(days=0) == 1
        assert store.load_network_from_db("direct") is None


@pytest.mark.integration
class TestStoreIntegration:
    """Integration tests for storage and training."""

    def test_save_load_train_cycle(self, temp_db_dir):
        """Test complete cycle: save, load, train, save again."""
        save_network(Network(2, 3, 1, rng=2), "cycle", model_dir=temp_db_dir, trained=False)

        net = load_network("cycle", temp_db_dir)
        trainer = Trainer(net, max_epochs=10)
        with pytest.raises(NonConvergence) as exc_info:
            trainer.train(*xor_training_set(), 0.0)

        save_network(net, "cycle", model_dir=temp_db_dir, trained=True,
                     final_error=exc_info.value.error, epochs=trainer.epochs)

        final = load_network("cycle", temp_db_dir)
        metadata = get_network_metadata("cycle", temp_db_dir)
        assert np.array_equal(final.weights_kj, net.weights_kj)
        assert metadata['epochs'] == 10
        assert metadata['final_error'] == exc_info.value.error

    def test_multiple_networks_coexist(self, temp_db_dir):
        """Test that networks of different shapes can be stored together."""
        shapes = {"letters": (100, 30, 6), "xor": (2, 3, 1), "wide": (4, 20, 3)}
        for network_id, shape in shapes.items():
            save_network(Network(*shape), network_id, model_dir=temp_db_dir)

        assert len(list_saved_networks(temp_db_dir)) == len(shapes)
        for network_id, shape in shapes.items():
            assert load_network(network_id, temp_db_dir).shape == shape
