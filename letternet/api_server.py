"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for letter network
training.

This module provides endpoints for:
- Creating and managing three-layer networks
- Training networks in the background with per-epoch updates via WebSockets
- Running predictions and rendering letter samples
- Reading and replacing weights as delimited text
- Persisting networks to/from the SQLite model store

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for background training tasks
- Matplotlib to render letter samples
"""

import os
import sys
import uuid
import base64
import logging
from io import BytesIO
from typing import Dict, Any, List, Optional

import gevent
import numpy as np
from flask import Flask, request, jsonify, Response
from flask_cors import CORS
from flask_socketio import SocketIO

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from letternet import dataset
from letternet.config import Settings, configure_logging
from letternet.errors import (
    FormatError,
    NonConvergence,
    ParseError,
    ShapeMismatch,
    TrainingCancelled
)
from letternet.network import Network
from letternet.trainer import Trainer
from letternet.weight_io import parse_weights, serialize_weights
from letternet.model_store import (
    save_network,
    load_network,
    list_saved_networks,
    delete_network,
    delete_old_networks
)

settings = Settings.from_env()
configure_logging(settings)
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})

socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not settings.is_production,
    engineio_logger=not settings.is_production
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Networks currently loaded in memory: {network_id: network_info}
active_networks: Dict[str, Dict[str, Any]] = {}

# Training jobs being tracked: {job_id: job_info}
training_jobs: Dict[str, Dict[str, Any]] = {}

# Letter samples and their binary labels, when the data directory exists
letter_inputs: Optional[np.ndarray] = None
letter_labels: Optional[np.ndarray] = None

ACTIVE_JOB_STATUSES = ('pending', 'training')
FINISHED_JOB_STATUSES = ('completed', 'failed', 'cancelled')

# Saved networks older than this many days are removed by the cleanup task
CLEANUP_DAYS = 2


# ============================================================================
# DATA LOADING
# ============================================================================

def load_letter_data(directory: str = settings.data_dir) -> bool:
    """
    Load the 52 letter samples into global variables.

    Returns:
        bool: True if the samples were loaded
    """
    global letter_inputs, letter_labels

    if not os.path.isdir(directory):
        logger.info(f"Letter data directory {directory} not found, letters disabled")
        return False

    letter_inputs = dataset.load_letter_set(directory, settings.input_size)
    letter_labels = dataset.binary_labels(dataset.CLASS_COUNT)
    logger.info(
        f"Letter data loaded: {letter_inputs.shape[0]} samples, "
        f"{letter_labels.shape[1]}-bit labels"
    )
    return True


def reload_saved_networks() -> None:
    """Load every network in the model store into memory."""
    saved_networks = list_saved_networks(settings.model_dir)

    if not saved_networks:
        logger.info("No saved networks to reload")
        return

    loaded_count = 0
    for net_info in saved_networks:
        network_id = net_info['network_id']
        net = load_network(network_id, settings.model_dir)
        if net is None:
            logger.warning(f"Failed to load network {network_id}")
            continue

        active_networks[network_id] = {
            'network': net,
            'architecture': net_info['architecture'],
            'trained': net_info['trained'],
            'final_error': net_info['final_error']
        }
        loaded_count += 1

    logger.info(f"Reloaded {loaded_count} network(s) from database")


# ============================================================================
# BACKGROUND TASKS
# ============================================================================

# Flag to ensure cleanup task only starts once
_cleanup_task_started = False


def cleanup_finished_training_jobs() -> int:
    """
    Remove completed, failed and cancelled training jobs from memory.

    Returns:
        int: Number of jobs removed
    """
    jobs_to_remove = [
        job_id for job_id, job_info in training_jobs.items()
        if job_info.get('status') in FINISHED_JOB_STATUSES
    ]

    for job_id in jobs_to_remove:
        del training_jobs[job_id]

    if jobs_to_remove:
        logger.info(f"Cleaned up {len(jobs_to_remove)} finished training job(s)")
    return len(jobs_to_remove)


def cleanup_old_networks(days: int = CLEANUP_DAYS) -> int:
    """
    Delete saved networks older than ``days`` and drop them from memory.

    Networks that were never saved stay in memory, as do networks with a
    running job; the job saves them again when it completes.

    Returns:
        int: Number deleted from the store, or -1 on a database error
    """
    saved_before = {net['network_id'] for net in list_saved_networks(settings.model_dir)}
    deleted_count = delete_old_networks(days, settings.model_dir)
    if deleted_count <= 0:
        return deleted_count

    saved_after = {net['network_id'] for net in list_saved_networks(settings.model_dir)}
    for nid in saved_before - saved_after:
        if nid in active_networks and active_job_for(nid) is None:
            del active_networks[nid]
            logger.info(f"Removed network {nid} from memory (deleted from database)")
    return deleted_count


def cleanup_task() -> None:
    """
    Background task that runs immediately, then every 24 hours, to delete
    old networks and forget finished training jobs.
    """
    while True:
        try:
            logger.info("Starting automatic cleanup of old networks...")
            deleted_count = cleanup_old_networks()
            if deleted_count < 0:
                logger.error("Cleanup returned error code")
            else:
                logger.info(f"Cleanup completed: deleted {deleted_count} network(s)")

            cleanup_finished_training_jobs()

            logger.info("Next cleanup scheduled in 24 hours")
            gevent.sleep(86400)

        except Exception as e:
            logger.exception(f"Error during network cleanup: {e}")
            gevent.sleep(3600)


def start_cleanup_task() -> None:
    """
    Start the background cleanup task.

    Idempotent; a WSGI entry point calls this after importing the app.
    """
    global _cleanup_task_started

    if _cleanup_task_started:
        logger.debug("Cleanup task already started, skipping")
        return

    _cleanup_task_started = True
    logger.info("Starting cleanup task (runs immediately, then every 24 hours)")
    gevent.spawn(cleanup_task)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def array_to_float_list(array: np.ndarray) -> List[float]:
    """Convert a numpy array to a list of floats (for JSON serialization)."""
    return [float(val) for val in np.ravel(array)]


def network_summary(network_id: str, info: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'network_id': network_id,
        'architecture': info['architecture'],
        'trained': info['trained'],
        'final_error': info['final_error']
    }


def active_job_for(network_id: str) -> Optional[str]:
    """Return the id of the pending or running job of a network, if any."""
    for job_id, job in training_jobs.items():
        if job['network_id'] == network_id and job.get('status') in ACTIVE_JOB_STATUSES:
            return job_id
    return None


def busy_response(network_id: str, job_id: str):
    logger.warning(f"Network {network_id} is busy with training job {job_id}")
    return jsonify({
        'error': 'Network is being trained',
        'job_id': job_id
    }), 409


def create_letter_image(image_data: np.ndarray, predicted: str, actual: str) -> str:
    """
    Create a base64-encoded PNG image of a letter sample.

    Args:
        image_data: Sample vector of a square image
        predicted: Letter the network predicted
        actual: Letter of the sample

    Returns:
        Base64-encoded PNG image string
    """
    side = int(round(np.sqrt(image_data.size)))

    plt.figure(figsize=(3, 3))
    plt.imshow(image_data.reshape(side, side), cmap='gray')
    plt.title(f"Predicted: {predicted} | Actual: {actual}")
    plt.axis('off')

    buffer = BytesIO()
    plt.savefig(buffer, format='png', bbox_inches='tight')
    buffer.seek(0)
    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    plt.close()

    return img_base64


def _training_set(data: Dict[str, Any]):
    """Pick the training set named by a train request."""
    name = data.get('dataset')
    if name == 'xor':
        return dataset.xor_training_set()
    if name == 'letters':
        if letter_inputs is None:
            raise LookupError('Letter data not available')
        return letter_inputs, letter_labels
    if 'inputs' in data and 'targets' in data:
        return np.array(data['inputs'], dtype=float), np.array(data['targets'], dtype=float)
    raise ValueError("Provide 'dataset' ('xor' or 'letters') or 'inputs' and 'targets'")


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """Return server status and statistics."""
    active_training = sum(
        1 for job in training_jobs.values()
        if job.get('status') in ACTIVE_JOB_STATUSES
    )

    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks),
        'training_jobs': active_training,
        'letters_loaded': letter_inputs is not None
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create a new network with random weights.

    Request body (optional):
        {
            'input_size': 10000,
            'hidden_size': 30,
            'output_size': 6,
            'weight_range': 0.5,
            'seed': 42
        }
    """
    data = request.get_json(silent=True) or {}
    input_size = data.get('input_size', settings.input_size)
    hidden_size = data.get('hidden_size', settings.hidden_size)
    output_size = data.get('output_size', dataset.label_width(dataset.CLASS_COUNT))
    weight_range = data.get('weight_range', settings.weight_range)
    seed = data.get('seed')

    for name, value in (('input_size', input_size),
                        ('hidden_size', hidden_size),
                        ('output_size', output_size)):
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            logger.warning(f"Invalid {name} requested: {value}")
            return jsonify({'error': f'{name} must be a positive integer'}), 400
    if not isinstance(weight_range, (int, float)) or weight_range <= 0:
        return jsonify({'error': 'weight_range must be a positive number'}), 400
    if seed is not None and not isinstance(seed, int):
        return jsonify({'error': 'seed must be an integer'}), 400

    network_id = str(uuid.uuid4())
    net = Network(input_size, hidden_size, output_size, weight_range, rng=seed)
    architecture = list(net.shape)

    active_networks[network_id] = {
        'network': net,
        'architecture': architecture,
        'trained': False,
        'final_error': None
    }

    logger.info(f"Created network {network_id} with architecture {architecture}")

    return jsonify({
        'network_id': network_id,
        'architecture': architecture,
        'status': 'created'
    }), 201


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List all available networks (both in-memory and saved to disk)."""
    in_memory = []
    for nid, info in active_networks.items():
        summary = network_summary(nid, info)
        summary['status'] = 'in_memory'
        in_memory.append(summary)

    saved_only = []
    for net in list_saved_networks(settings.model_dir):
        if net['network_id'] not in active_networks:
            net['status'] = 'saved'
            saved_only.append(net)

    logger.debug(f"Listing networks: {len(in_memory)} in memory, {len(saved_only)} saved")

    return jsonify({'networks': in_memory + saved_only}), 200


@app.route('/api/networks/cleanup', methods=['POST'])
def cleanup_old_networks_endpoint():
    """
    Delete saved networks older than ``days`` and forget finished jobs.

    Request body (optional):
        {'days': 2}
    """
    data = request.get_json(silent=True) or {}
    days = data.get('days', CLEANUP_DAYS)

    if not isinstance(days, (int, float)) or isinstance(days, bool) or days < 0:
        return jsonify({'error': 'days must be a non-negative number'}), 400

    deleted_count = cleanup_old_networks(days)
    if deleted_count == -1:
        return jsonify({'error': 'Error occurred during cleanup'}), 500
    jobs_removed = cleanup_finished_training_jobs()

    logger.info(f"Manual cleanup: deleted {deleted_count} network(s) older than {days} day(s)")

    return jsonify({
        'deleted_count': deleted_count,
        'jobs_removed': jobs_removed,
        'days': days
    }), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from both memory and disk."""
    job_id = active_job_for(network_id)
    if job_id is not None:
        training_jobs[job_id]['cancel_requested'] = True
        logger.info(f"Cancelling training job {job_id} of deleted network {network_id}")

    deleted_from_memory = active_networks.pop(network_id, None) is not None
    deleted_from_disk = delete_network(network_id, settings.model_dir)

    if not deleted_from_memory and not deleted_from_disk:
        logger.warning(f"Delete attempted for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    logger.info(f"Deleted network {network_id}: memory={deleted_from_memory}, disk={deleted_from_disk}")

    return jsonify({
        'network_id': network_id,
        'deleted_from_memory': deleted_from_memory,
        'deleted_from_disk': deleted_from_disk
    }), 200


@app.route('/api/networks/<network_id>/predict', methods=['POST'])
def predict(network_id: str):
    """
    Run the network on one input vector.

    Request body:
        {'input': [0.0, 1.0]}
    """
    if network_id not in active_networks:
        return jsonify({'error': 'Network not found'}), 404

    data = request.get_json(silent=True) or {}
    if 'input' not in data:
        return jsonify({'error': "Request body must contain 'input'"}), 400

    net = active_networks[network_id]['network']
    try:
        output = net.predict(np.array(data['input'], dtype=float))
    except (ShapeMismatch, ValueError, TypeError) as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({
        'network_id': network_id,
        'output': array_to_float_list(output),
        'label': dataset.decode_label(output)
    }), 200


@app.route('/api/networks/<network_id>/weights', methods=['GET'])
def get_weights(network_id: str):
    """Return the weights as one line of comma-separated values."""
    if network_id not in active_networks:
        return jsonify({'error': 'Network not found'}), 404

    net = active_networks[network_id]['network']
    text = serialize_weights(net.weights_kj, net.weights_ji)
    return Response(text, mimetype='text/plain')


@app.route('/api/networks/<network_id>/weights', methods=['PUT'])
def put_weights(network_id: str):
    """Replace the weights with comma-separated values from the request body."""
    if network_id not in active_networks:
        return jsonify({'error': 'Network not found'}), 404

    job_id = active_job_for(network_id)
    if job_id is not None:
        return busy_response(network_id, job_id)

    info = active_networks[network_id]
    net = info['network']
    try:
        w_kj, w_ji = parse_weights(request.get_data(as_text=True), *net.shape)
    except (ParseError, FormatError) as e:
        logger.warning(f"Rejected weights for network {network_id}: {e}")
        return jsonify({'error': str(e)}), 400

    net.set_weights(w_kj, w_ji)
    save_network(net, network_id, settings.model_dir,
                 trained=info['trained'], final_error=info['final_error'])

    logger.info(f"Replaced weights of network {network_id}")
    return jsonify({'network_id': network_id, 'status': 'weights_loaded'}), 200


@app.route('/api/networks/<network_id>/train', methods=['POST'])
def train_network(network_id: str):
    """
    Start training a network in the background.

    Request body:
        {
            'dataset': 'xor' | 'letters',   # or 'inputs' and 'targets'
            'target_error': 0.1,
            'learning_rate': 1.0,
            'max_epochs': 100000
        }
    """
    if network_id not in active_networks:
        logger.warning(f"Training requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    busy_job_id = active_job_for(network_id)
    if busy_job_id is not None:
        return busy_response(network_id, busy_job_id)

    data = request.get_json(silent=True) or {}
    target_error = data.get('target_error', settings.target_error)
    learning_rate = data.get('learning_rate', settings.learning_rate)
    max_epochs = data.get('max_epochs', settings.max_epochs)

    if not isinstance(target_error, (int, float)) or target_error < 0:
        return jsonify({'error': 'target_error must be a non-negative number'}), 400
    if not isinstance(learning_rate, (int, float)) or learning_rate <= 0:
        return jsonify({'error': 'learning_rate must be a positive number'}), 400
    if max_epochs is not None and (not isinstance(max_epochs, int) or max_epochs < 1):
        return jsonify({'error': 'max_epochs must be a positive integer'}), 400

    net = active_networks[network_id]['network']
    try:
        inputs, targets = _training_set(data)
    except LookupError as e:
        return jsonify({'error': str(e)}), 404
    except (ValueError, TypeError) as e:
        return jsonify({'error': str(e)}), 400

    trainer = Trainer(net, learning_rate=learning_rate, max_epochs=max_epochs)
    try:
        inputs, targets = trainer.prepare_training_set(inputs, targets)
    except (ShapeMismatch, ValueError) as e:
        return jsonify({'error': str(e)}), 400

    cleanup_finished_training_jobs()

    job_id = str(uuid.uuid4())
    training_jobs[job_id] = {
        'network_id': network_id,
        'status': 'pending',
        'epoch': 0,
        'error': None,
        'target_error': target_error,
        'max_epochs': max_epochs,
        'cancel_requested': False
    }

    logger.info(
        f"Created training job {job_id} for network {network_id}: "
        f"examples={inputs.shape[0]}, target_error={target_error}, "
        f"lr={learning_rate}, max_epochs={max_epochs}"
    )

    socketio.start_background_task(
        train_network_task, network_id, job_id, trainer, inputs, targets, target_error
    )

    return jsonify({
        'job_id': job_id,
        'network_id': network_id,
        'status': 'training_started'
    }), 202


def train_network_task(
    network_id: str,
    job_id: str,
    trainer: Trainer,
    inputs: np.ndarray,
    targets: np.ndarray,
    target_error: float
) -> None:
    """
    Background task that trains a network.

    Sends an update via WebSocket after every epoch.
    """
    job = training_jobs[job_id]
    net = trainer.network

    def on_epoch_complete(data: Dict[str, Any]) -> None:
        job['status'] = 'training'
        job['epoch'] = data['epoch']
        job['error'] = data['error']

        socketio.emit('training_update', {
            'job_id': job_id,
            'network_id': network_id,
            'epoch': data['epoch'],
            'error': data['error'],
            'target_error': data['target_error'],
            'max_epochs': data['max_epochs'],
            'elapsed_time': data['elapsed_time']
        })
        gevent.sleep(0)

    trainer.on_epoch_complete = on_epoch_complete
    trainer.should_stop = lambda: job['cancel_requested']
    trainer.yield_func = lambda: gevent.sleep(0)

    try:
        logger.info(f"Starting training for job {job_id}")
        final_error = trainer.train(inputs, targets, target_error)

        job['status'] = 'completed'
        job['error'] = final_error
        job['epoch'] = trainer.epochs

        info = active_networks.get(network_id)
        if info is None:
            logger.warning(f"Network {network_id} was deleted during job {job_id}, not saving")
        else:
            info['trained'] = True
            info['final_error'] = final_error
            save_network(net, network_id, settings.model_dir, trained=True,
                         final_error=final_error, epochs=trainer.epochs)

        logger.info(f"Training completed for job {job_id}: error {final_error}")

        socketio.emit('training_complete', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'completed',
            'error': final_error,
            'epochs': trainer.epochs
        })
        gevent.sleep(0)

    except NonConvergence as e:
        status = 'cancelled' if isinstance(e, TrainingCancelled) else 'failed'
        logger.warning(f"Training job {job_id} {status}: {e}")

        job['status'] = status
        job['message'] = str(e)
        job['epoch'] = e.epochs

        socketio.emit('training_error', {
            'job_id': job_id,
            'network_id': network_id,
            'status': status,
            'error': e.error if np.isfinite(e.error) else None,
            'message': str(e)
        })
        gevent.sleep(0)

    except Exception as e:
        logger.exception(f"Training failed for job {job_id}: {e}")

        job['status'] = 'failed'
        job['message'] = str(e)

        socketio.emit('training_error', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'failed',
            'message': str(e)
        })
        gevent.sleep(0)


@app.route('/api/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    """Get the current status of a training job."""
    if job_id not in training_jobs:
        logger.warning(f"Status requested for non-existent job: {job_id}")
        return jsonify({'error': 'Training job not found'}), 404

    job = dict(training_jobs[job_id])
    if job.get('error') is not None and not np.isfinite(job['error']):
        job['error'] = None
    return jsonify(job), 200


@app.route('/api/training/<job_id>/cancel', methods=['POST'])
def cancel_training(job_id: str):
    """Ask a running job to stop at the start of its next epoch."""
    job = training_jobs.get(job_id)
    if job is None:
        return jsonify({'error': 'Training job not found'}), 404
    if job['status'] not in ('pending', 'training'):
        return jsonify({'error': f"Job is already {job['status']}"}), 409

    job['cancel_requested'] = True
    logger.info(f"Cancellation requested for training job {job_id}")
    return jsonify({'job_id': job_id, 'status': 'cancel_requested'}), 202


@app.route('/api/networks/<network_id>/letters/<int:index>', methods=['GET'])
def get_letter_example(network_id: str, index: int):
    """
    Run the network on letter sample ``index`` (1 to 52).

    Returns JSON with the rendered sample, predicted and actual letter and
    the network output.
    """
    if network_id not in active_networks:
        logger.warning(f"Letter example requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    if letter_inputs is None:
        logger.error("Letter data not loaded")
        return jsonify({'error': 'Letter data not available'}), 404

    if not 1 <= index <= letter_inputs.shape[0]:
        return jsonify({'error': f'index must be between 1 and {letter_inputs.shape[0]}'}), 400

    net = active_networks[network_id]['network']
    x = letter_inputs[index - 1]
    try:
        output = net.predict(x)
    except ShapeMismatch as e:
        return jsonify({'error': str(e)}), 400

    predicted_index = dataset.decode_label(output)
    actual = dataset.letter_for_index(index)
    if 1 <= predicted_index <= len(dataset.LETTERS):
        predicted = dataset.letter_for_index(predicted_index)
    else:
        predicted = '?'

    return jsonify({
        'network_id': network_id,
        'example_index': index,
        'predicted_index': predicted_index,
        'predicted_letter': predicted,
        'actual_letter': actual,
        'image_data': create_letter_image(x, predicted, actual),
        'network_output': array_to_float_list(output)
    }), 200


# ============================================================================
# STARTUP
# ============================================================================

load_letter_data()
reload_saved_networks()


if __name__ == '__main__':
    port = settings.port
    logger.info(f"Starting server at http://localhost:{port}/")

    start_cleanup_task()

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not settings.is_production,
            use_reloader=False
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        else:
            raise
