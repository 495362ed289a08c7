"""
model_store.py
~~~~~~~~~~~~~~

SQLite storage for named networks.

Weights are stored in the same comma-separated text used for weight
files, next to the network dimensions and the result of its last
training run.
"""

import os
import sqlite3
import logging
from typing import Optional, List, Dict, Any, Generator
from contextlib import contextmanager

from letternet.errors import LetterNetError
from letternet.network import Network
from letternet.weight_io import parse_weights, serialize_weights

logger = logging.getLogger(__name__)

DB_NAME = 'networks.db'


def _row_metadata(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        'network_id': row['network_id'],
        'architecture': [row['n_in'], row['n_hid'], row['n_out']],
        'weights_shape': [
            [row['n_in'], row['n_hid']],
            [row['n_hid'], row['n_out']]
        ],
        'trained': bool(row['trained']),
        'final_error': row['final_error'],
        'epochs': row['epochs'],
        'created_at': row['created_at'],
        'updated_at': row['updated_at']
    }


class ModelStore:
    """
    SQLite database of networks.

    Each row holds:
    - The network dimensions (n_in, n_hid, n_out)
    - The weights as delimited text
    - Training status (trained flag, final aggregate error, epoch count)
    """

    def __init__(self, db_path: str = os.path.join('models', DB_NAME)):
        self.db_path = db_path
        self._ensure_directory()
        self._initialize_schema()

    def _ensure_directory(self) -> None:
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Connection that commits on success and rolls back on error."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self) -> None:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS networks (
                    network_id TEXT PRIMARY KEY,
                    n_in INTEGER NOT NULL,
                    n_hid INTEGER NOT NULL,
                    n_out INTEGER NOT NULL,
                    weights TEXT NOT NULL,
                    trained INTEGER NOT NULL DEFAULT 0,
                    final_error REAL,
                    epochs INTEGER,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_created_at
                ON networks(created_at DESC)
            ''')

    def save_network_to_db(
        self,
        network: Network,
        network_id: str,
        trained: bool = True,
        final_error: Optional[float] = None,
        epochs: Optional[int] = None
    ) -> bool:
        """
        Insert or replace a network.

        An existing row keeps its ``created_at`` time.

        Raises:
            ValueError: If final_error is negative
        """
        if final_error is not None and final_error < 0:
            raise ValueError(
                f"final_error must be non-negative, got {final_error}"
            )

        weights = serialize_weights(network.weights_kj, network.weights_ji)
        n_in, n_hid, n_out = network.shape

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO networks
                (network_id, n_in, n_hid, n_out, weights, trained,
                 final_error, epochs)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(network_id) DO UPDATE SET
                    n_in = excluded.n_in,
                    n_hid = excluded.n_hid,
                    n_out = excluded.n_out,
                    weights = excluded.weights,
                    trained = excluded.trained,
                    final_error = excluded.final_error,
                    epochs = excluded.epochs,
                    updated_at = CURRENT_TIMESTAMP
            ''', (
                network_id,
                n_in,
                n_hid,
                n_out,
                weights,
                1 if trained else 0,
                final_error,
                epochs
            ))

        logger.info(
            f"Saved network '{network_id}' with shape {network.shape}, "
            f"trained={trained}, final_error={final_error}"
        )
        return True

    def load_network_from_db(self, network_id: str) -> Optional[Network]:
        """Load a network, or return None if there is no such id."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT n_in, n_hid, n_out, weights FROM networks '
                'WHERE network_id = ?',
                (network_id,)
            )
            row = cursor.fetchone()

        if row is None:
            logger.warning(f"Network '{network_id}' not found")
            return None

        w_kj, w_ji = parse_weights(
            row['weights'], row['n_in'], row['n_hid'], row['n_out'],
            source=f"network '{network_id}'"
        )
        network = Network.from_weights(row['n_in'], row['n_hid'], w_kj, w_ji)
        logger.info(f"Loaded network '{network_id}'")
        return network

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        """Metadata of every stored network, newest first."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT network_id, n_in, n_hid, n_out, trained,
                       final_error, epochs, created_at, updated_at
                FROM networks
                ORDER BY created_at DESC
            ''')
            networks = [_row_metadata(row) for row in cursor.fetchall()]

        logger.debug(f"Listed {len(networks)} networks")
        return networks

    def delete_network_from_db(self, network_id: str) -> bool:
        """Delete a network; return False if it did not exist."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'DELETE FROM networks WHERE network_id = ?',
                (network_id,)
            )
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted network '{network_id}'")
        else:
            logger.warning(f"Could not delete network '{network_id}': not found")
        return deleted

    def get_network_metadata_from_db(self, network_id: str) -> Optional[Dict[str, Any]]:
        """Metadata of one network without parsing its weights."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT network_id, n_in, n_hid, n_out, trained,
                       final_error, epochs, created_at, updated_at
                FROM networks
                WHERE network_id = ?
            ''', (network_id,))
            row = cursor.fetchone()

        if row is None:
            logger.warning(f"Metadata for network '{network_id}' not found")
            return None
        return _row_metadata(row)

    def delete_old_networks_from_db(self, days: int) -> int:
        """
        Delete networks created more than ``days`` days ago.

        Returns:
            int: Number of networks deleted

        Raises:
            ValueError: If days is negative
        """
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM networks "
                "WHERE julianday('now') - julianday(created_at) > ?",
                (days,)
            )
            deleted = cursor.rowcount

        logger.info(f"Deleted {deleted} network(s) older than {days} day(s)")
        return deleted


def _get_store(model_dir: str) -> ModelStore:
    return ModelStore(db_path=os.path.join(model_dir, DB_NAME))


def save_network(
    network: Network,
    network_id: str,
    model_dir: str = 'models',
    trained: bool = True,
    final_error: Optional[float] = None,
    epochs: Optional[int] = None
) -> bool:
    """
    Save a network to the store in ``model_dir``.

    Returns:
        bool: True if the save was successful, False otherwise

    Example:
        >>> net = Network(2, 3, 1)
        >>> save_network(net, "xor", trained=False)
        True
    """
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return False

    try:
        return _get_store(model_dir).save_network_to_db(
            network, network_id, trained, final_error, epochs
        )
    except ValueError as e:
        logger.error(f"Validation error saving network '{network_id}': {e}")
        return False
    except sqlite3.Error as e:
        logger.error(f"Database error saving network '{network_id}': {e}")
        return False


def load_network(network_id: str, model_dir: str = 'models') -> Optional[Network]:
    """
    Load a network from the store in ``model_dir``.

    Returns:
        The network, or None if it is missing or cannot be read
    """
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return None

    try:
        return _get_store(model_dir).load_network_from_db(network_id)
    except LetterNetError as e:
        logger.error(f"Stored weights of '{network_id}' are invalid: {e}")
        return None
    except sqlite3.Error as e:
        logger.error(f"Database error loading network '{network_id}': {e}")
        return None


def list_saved_networks(model_dir: str = 'models') -> List[Dict[str, Any]]:
    """Metadata of every stored network, or [] on a database error."""
    try:
        return _get_store(model_dir).list_networks_from_db()
    except sqlite3.Error as e:
        logger.error(f"Database error listing networks: {e}")
        return []


def delete_network(network_id: str, model_dir: str = 'models') -> bool:
    """Delete a stored network; False if it is missing or on error."""
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return False

    try:
        return _get_store(model_dir).delete_network_from_db(network_id)
    except sqlite3.Error as e:
        logger.error(f"Database error deleting network '{network_id}': {e}")
        return False


def get_network_metadata(network_id: str, model_dir: str = 'models') -> Optional[Dict[str, Any]]:
    """Metadata of one stored network, or None."""
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return None

    try:
        return _get_store(model_dir).get_network_metadata_from_db(network_id)
    except sqlite3.Error as e:
        logger.error(f"Database error getting metadata for '{network_id}': {e}")
        return None


def delete_old_networks(days: int = 2, model_dir: str = 'models') -> int:
    """
    Delete networks older than ``days`` days.

    Returns:
        int: Number deleted, or -1 on a database error

    Raises:
        ValueError: If days is negative
    """
    try:
        return _get_store(model_dir).delete_old_networks_from_db(days)
    except sqlite3.Error as e:
        logger.error(f"Database error deleting old networks: {e}")
        return -1
