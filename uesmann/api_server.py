"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for training
modulated networks.

This module provides endpoints for:
- Creating networks of any type and running them at a modulator value
- Training networks on posted examples with real-time progress updates
  via WebSockets
- Persisting networks to/from SQLite database

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for async background training tasks
- SQLite for network persistence
"""

import os
import sys
import uuid
import logging
from typing import Dict, Any, List, Optional

import gevent
import numpy as np
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

from uesmann.data import ExampleSet, ShuffleMode
from uesmann.network import Net, NetType, SGDParams
from uesmann.net_factory import make_net
from uesmann.model_persistence import (
    save_network,
    load_network,
    list_saved_networks,
    delete_network,
    delete_old_networks
)

# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('FLASK_ENV') == 'production'

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if is_production:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('uesmann').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})

is_production = os.getenv('FLASK_ENV') == 'production'

# Directory holding the network database
MODEL_DIR = os.getenv('MODEL_DIR', 'models')

socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not is_production,
    engineio_logger=not is_production,
    ping_timeout=60,
    ping_interval=25
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Networks currently loaded in memory: {network_id: network_info}
active_networks: Dict[str, Dict[str, Any]] = {}

# Training jobs being tracked: {job_id: job_info}
training_jobs: Dict[str, Dict[str, Any]] = {}


def reload_saved_networks() -> None:
    """
    Reload all saved networks from the database into memory.

    Called at startup to restore networks that were saved before the
    server was restarted.
    """
    saved_networks = list_saved_networks(MODEL_DIR)

    if not saved_networks:
        logger.info("No saved networks to reload")
        return

    loaded_count = 0
    for net_info in saved_networks:
        network_id = net_info['network_id']
        net = load_network(network_id, MODEL_DIR)
        if net is None:
            logger.warning(f"Failed to load network {network_id}")
            continue
        active_networks[network_id] = _network_info(
            net, net_info['trained'], net_info['mse']
        )
        loaded_count += 1

    logger.info(f"Reloaded {loaded_count} network(s) from database")


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _network_info(net: Net, trained: bool,
                  mse: Optional[float]) -> Dict[str, Any]:
    return {
        'network': net,
        'net_type': net.net_type.name,
        'layer_sizes': net.get_layer_sizes(),
        'trained': trained,
        'mse': mse
    }


ACTIVE_JOB_STATUSES = ('pending', 'training')


def _has_active_job(network_id: str) -> bool:
    """Check whether a network has a training job pending or running."""
    return any(
        job['network_id'] == network_id
        and job.get('status') in ACTIVE_JOB_STATUSES
        for job in training_jobs.values()
    )


def array_to_float_list(array: np.ndarray) -> List[float]:
    """Convert a numpy array to a list of floats (for JSON serialization)."""
    return [float(val) for val in array.flatten()]


def parse_net_type(value: Any) -> NetType:
    """
    Get a network type from its name (case-insensitive) or integer tag.

    Raises:
        ValueError: If there is no such type
    """
    if isinstance(value, str):
        try:
            return NetType[value.upper()]
        except KeyError:
            raise ValueError(f"Unknown network type: {value}") from None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Unknown network type: {value}")
    return NetType(value)


def build_example_set(
    items: Any,
    ninputs: int,
    noutputs: int,
    num_h_levels: int = 1
) -> ExampleSet:
    """
    Build an example set from a list of {'inputs', 'outputs', 'h'} dicts.

    Args:
        items: The posted examples
        ninputs: Number of inputs each example must have
        noutputs: Number of outputs each example must have
        num_h_levels: Number of modulator levels in the data

    Returns:
        ExampleSet: The examples, in the order given

    Raises:
        ValueError: If the list is empty or an example is malformed
    """
    if not isinstance(items, list) or not items:
        raise ValueError("examples must be a non-empty list")

    examples = ExampleSet(len(items), ninputs, noutputs, num_h_levels)
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValueError(f"Example {i} must be an object")
        inputs = item.get('inputs')
        outputs = item.get('outputs')
        if not isinstance(inputs, list) or len(inputs) != ninputs:
            raise ValueError(f"Example {i} must have {ninputs} inputs")
        if not isinstance(outputs, list) or len(outputs) != noutputs:
            raise ValueError(f"Example {i} must have {noutputs} outputs")
        h = item.get('h', 0.0)
        if isinstance(h, bool) or not isinstance(h, (int, float)):
            raise ValueError(f"Example {i} has an invalid h: {h}")
        try:
            examples.get_inputs(i)[:] = inputs
            examples.get_outputs(i)[:] = outputs
        except (TypeError, ValueError):
            raise ValueError(f"Example {i} has non-numeric values") from None
        examples.set_h(i, float(h))
    return examples


def build_sgd_params(data: Dict[str, Any], examples: ExampleSet) -> SGDParams:
    """
    Build training parameters from a train request body.

    Raises:
        ValueError: If a parameter is invalid
    """
    eta = data.get('eta', 0.1)
    iterations = data.get('iterations', 10000)
    seed = data.get('seed', 0)

    if isinstance(eta, bool) or not isinstance(eta, (int, float)) or eta <= 0:
        raise ValueError('eta must be a positive number')
    if isinstance(iterations, bool) or not isinstance(iterations, int) \
            or iterations < 1:
        raise ValueError('iterations must be a positive integer')
    if isinstance(seed, bool) or not isinstance(seed, int) or seed < 0:
        raise ValueError('seed must be a non-negative integer')

    params = SGDParams(float(eta), iterations).set_seed(seed)

    shuffle = data.get('shuffle', ShuffleMode.STRIDE.value)
    try:
        params.set_shuffle(ShuffleMode(shuffle))
    except ValueError:
        raise ValueError(f"Unknown shuffle mode: {shuffle}") from None

    init_range = data.get('init_range')
    if init_range is not None:
        if isinstance(init_range, bool) or \
                not isinstance(init_range, (int, float)):
            raise ValueError('init_range must be a number')
        params.set_init_range(float(init_range))

    cv = data.get('cross_validation')
    if cv is not None:
        if not isinstance(cv, dict):
            raise ValueError('cross_validation must be an object')
        params.cross_validation(
            examples,
            cv.get('prop', 0.5),
            cv.get('count', 10),
            cv.get('slices', 1),
            bool(cv.get('shuffle', True))
        )

    return params.store_best()


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """
    Return server status and statistics.

    Returns counts of active networks and training jobs that are
    currently in progress (status='pending' or 'training').
    """
    active_training = sum(
        1 for job in training_jobs.values()
        if job.get('status') in ACTIVE_JOB_STATUSES
    )

    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks),
        'training_jobs': active_training
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create a new network.

    Request body:
        {'net_type': 'UESMANN', 'layer_sizes': [2, 2, 1]}

    Returns:
        JSON with network_id, net_type, layer_sizes and status
    """
    data = request.get_json(silent=True) or {}
    layer_sizes = data.get('layer_sizes')

    if not isinstance(layer_sizes, list) or len(layer_sizes) < 2 or \
            not all(isinstance(n, int) and not isinstance(n, bool)
                    for n in layer_sizes):
        logger.warning(f"Invalid layer sizes requested: {layer_sizes}")
        return jsonify({
            'error': 'layer_sizes must be a list of at least 2 integers'
        }), 400

    try:
        net_type = parse_net_type(data.get('net_type', 'UESMANN'))
        net = make_net(net_type, layer_sizes)
    except ValueError as e:
        logger.warning(f"Invalid network requested: {e}")
        return jsonify({'error': str(e)}), 400

    network_id = str(uuid.uuid4())
    active_networks[network_id] = _network_info(net, False, None)

    logger.info(
        f"Created {net_type.name} network {network_id} with layers "
        f"{layer_sizes}"
    )

    return jsonify({
        'network_id': network_id,
        'net_type': net_type.name,
        'layer_sizes': net.get_layer_sizes(),
        'status': 'created'
    }), 201


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List all available networks (both in-memory and saved to disk)."""
    in_memory = [
        {
            'network_id': nid,
            'net_type': info['net_type'],
            'layer_sizes': info['layer_sizes'],
            'trained': info['trained'],
            'mse': info['mse'],
            'status': 'in_memory'
        }
        for nid, info in active_networks.items()
    ]

    saved_only = []
    for net in list_saved_networks(MODEL_DIR):
        if net['network_id'] not in active_networks:
            net['status'] = 'saved'
            saved_only.append(net)

    logger.debug(
        f"Listing networks: {len(in_memory)} in memory, "
        f"{len(saved_only)} saved"
    )

    return jsonify({'networks': in_memory + saved_only}), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from both memory and disk."""
    if _has_active_job(network_id):
        logger.warning(f"Delete refused for network in training: {network_id}")
        return jsonify({'error': 'Network is being trained'}), 409

    deleted_from_memory = False
    if network_id in active_networks:
        del active_networks[network_id]
        deleted_from_memory = True

    deleted_from_disk = delete_network(network_id, MODEL_DIR)

    if not deleted_from_memory and not deleted_from_disk:
        logger.warning(
            f"Delete attempted for non-existent network: {network_id}"
        )
        return jsonify({'error': 'Network not found'}), 404

    logger.info(
        f"Deleted network {network_id}: memory={deleted_from_memory}, "
        f"disk={deleted_from_disk}"
    )

    return jsonify({
        'network_id': network_id,
        'deleted_from_memory': deleted_from_memory,
        'deleted_from_disk': deleted_from_disk
    }), 200


@app.route('/api/networks/cleanup', methods=['POST'])
def cleanup_old_networks_endpoint():
    """
    Delete saved networks older than a number of days.

    Request body (optional):
        {'days': 2}  # defaults to 2
    """
    data = request.get_json(silent=True) or {}
    days = data.get('days', 2)

    if isinstance(days, bool) or not isinstance(days, (int, float)) \
            or days < 0:
        return jsonify({'error': 'days must be a non-negative number'}), 400

    deleted_count = delete_old_networks(days=int(days), model_dir=MODEL_DIR)
    if deleted_count == -1:
        return jsonify({'error': 'Error occurred during cleanup'}), 500

    # Forget in-memory copies of networks which are no longer saved
    saved_ids = {net['network_id'] for net in list_saved_networks(MODEL_DIR)}
    for nid in [nid for nid, info in active_networks.items()
                if info['trained'] and nid not in saved_ids
                and not _has_active_job(nid)]:
        del active_networks[nid]

    logger.info(
        f"Manual cleanup: deleted {deleted_count} network(s) older than "
        f"{days} day(s)"
    )

    return jsonify({
        'deleted_count': deleted_count,
        'days': days
    }), 200


@app.route('/api/networks/<network_id>/run', methods=['POST'])
def run_network(network_id: str):
    """
    Run a network on some inputs at a modulator value.

    Request body:
        {'inputs': [0, 1], 'h': 0.5}  # h defaults to 0

    Returns:
        JSON with the network outputs
    """
    if network_id not in active_networks:
        logger.warning(f"Run requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    net = active_networks[network_id]['network']
    data = request.get_json(silent=True) or {}
    inputs = data.get('inputs')
    h = data.get('h', 0.0)

    if not isinstance(inputs, list) or len(inputs) != net.get_input_count():
        return jsonify({
            'error': f'inputs must be a list of {net.get_input_count()} numbers'
        }), 400
    if isinstance(h, bool) or not isinstance(h, (int, float)):
        return jsonify({'error': 'h must be a number'}), 400

    try:
        values = np.array(inputs, dtype=np.float64)
    except (TypeError, ValueError):
        return jsonify({'error': 'inputs must be numbers'}), 400

    net.set_h(float(h))
    outputs = net.run(values)

    return jsonify({
        'network_id': network_id,
        'h': float(h),
        'outputs': array_to_float_list(outputs)
    }), 200


@app.route('/api/networks/<network_id>/train', methods=['POST'])
def train_network(network_id: str):
    """
    Start training a network in the background.

    Request body:
        {
            'examples': [{'inputs': [0, 0], 'outputs': [0], 'h': 0}, ...],
            'num_h_levels': 2,
            'eta': 0.1,
            'iterations': 10000,
            'cross_validation': {'prop': 0.5, 'count': 10, 'slices': 1,
                                 'shuffle': true},
            'seed': 0,
            'shuffle': 'stride',
            'init_range': null
        }

    Returns:
        JSON with job_id, network_id, and status
    """
    if network_id not in active_networks:
        logger.warning(
            f"Training requested for non-existent network: {network_id}"
        )
        return jsonify({'error': 'Network not found'}), 404

    if _has_active_job(network_id):
        logger.warning(
            f"Training requested for network already in training: {network_id}"
        )
        return jsonify({'error': 'Network is already being trained'}), 409

    net = active_networks[network_id]['network']
    data = request.get_json(silent=True) or {}
    num_h_levels = data.get('num_h_levels', 1)

    if isinstance(num_h_levels, bool) or not isinstance(num_h_levels, int) \
            or num_h_levels < 1:
        return jsonify({'error': 'num_h_levels must be a positive integer'}), 400

    try:
        examples = build_example_set(
            data.get('examples'),
            net.get_input_count(),
            net.get_output_count(),
            num_h_levels
        )
        params = build_sgd_params(data, examples)
    except (ValueError, TypeError) as e:
        logger.warning(f"Invalid training request for {network_id}: {e}")
        return jsonify({'error': str(e)}), 400

    job_id = str(uuid.uuid4())

    training_jobs[job_id] = {
        'network_id': network_id,
        'status': 'pending',
        'progress': 0,
        'iterations': params.iterations
    }

    logger.info(
        f"Created training job {job_id} for network {network_id}: "
        f"{examples.get_count()} examples, iterations={params.iterations}, "
        f"eta={params.eta}"
    )

    socketio.start_background_task(
        train_network_task, network_id, job_id, examples, params
    )

    return jsonify({
        'job_id': job_id,
        'network_id': network_id,
        'status': 'training_started'
    }), 202


def train_network_task(
    network_id: str,
    job_id: str,
    examples: ExampleSet,
    params: SGDParams
) -> None:
    """
    Background task that trains a network.

    Sends progress and cross-validation updates via WebSocket as
    training progresses, and saves the network when it is done.
    """
    net = active_networks[network_id]['network']

    def on_progress(data: Dict[str, Any]) -> None:
        """Called periodically during training to send progress updates."""
        progress = (data['iteration'] / data['total_iterations']) * 100

        training_jobs[job_id]['status'] = 'training'
        training_jobs[job_id]['progress'] = progress

        socketio.emit('training_update', {
            'job_id': job_id,
            'network_id': network_id,
            'iteration': data['iteration'],
            'total_iterations': data['total_iterations'],
            'min_error': data['min_error'],
            'progress': progress
        })

        # Let gevent send the message and serve other requests
        gevent.sleep(0)

    def on_cv(iteration: int, cv_slice: int, error: float) -> None:
        socketio.emit('cv_update', {
            'job_id': job_id,
            'network_id': network_id,
            'iteration': iteration,
            'slice': cv_slice,
            'error': error
        })

    params.set_progress_callback(on_progress, max(1, params.iterations // 100))
    params.set_cv_callback(on_cv)

    try:
        logger.info(f"Starting training for job {job_id}")

        mse = float(net.train_sgd(examples, params))

        info = active_networks.get(network_id)
        if info is None or info['network'] is not net:
            raise LookupError(
                f"Network {network_id} was removed during training"
            )
        info['trained'] = True
        info['mse'] = mse

        training_jobs[job_id]['status'] = 'completed'
        training_jobs[job_id]['mse'] = mse
        training_jobs[job_id]['progress'] = 100

        save_network(net, network_id, MODEL_DIR, trained=True, mse=mse)

        logger.info(f"Training completed for job {job_id}: MSE {mse:.6f}")

        socketio.emit('training_complete', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'completed',
            'mse': mse,
            'progress': 100
        })
        gevent.sleep(0)

    except (ValueError, LookupError, NotImplementedError) as e:
        logger.exception(f"Training failed for job {job_id}: {e}")

        training_jobs[job_id]['status'] = 'failed'
        training_jobs[job_id]['error'] = str(e)

        socketio.emit('training_error', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'failed',
            'error': str(e)
        })
        gevent.sleep(0)


@app.route('/api/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    """Get the current status of a training job."""
    if job_id in training_jobs:
        return jsonify(training_jobs[job_id]), 200

    logger.warning(f"Status requested for non-existent job: {job_id}")
    return jsonify({'error': 'Training job not found'}), 404


# ============================================================================
# SERVER STARTUP
# ============================================================================

if __name__ == '__main__':
    reload_saved_networks()

    is_cloud = bool(os.environ.get('PORT'))
    port = int(os.environ.get('PORT', 8000))

    if is_cloud:
        logger.info(f"Starting server in production mode on port {port}")
    else:
        logger.info(f"Starting server at http://localhost:{port}/")

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not is_cloud,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        else:
            raise
