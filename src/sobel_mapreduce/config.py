"""
Runtime configuration, read from the environment.
Command line flags override these defaults.
"""

import os
import tempfile

SHARED_DIR = os.getenv('SOBEL_MR_SHARED_DIR', os.path.join(tempfile.gettempdir(), 'sobel-mapreduce'))
NUM_MAP_TASKS = int(os.getenv('SOBEL_MR_NUM_MAP_TASKS', 4))
NUM_REDUCE_TASKS = int(os.getenv('SOBEL_MR_NUM_REDUCE_TASKS', 1))
MAX_WORKERS = int(os.getenv('SOBEL_MR_MAX_WORKERS', 4))
WORKER_PORT = int(os.getenv('SOBEL_MR_WORKER_PORT', 50052))
FETCH_TIMEOUT = float(os.getenv('SOBEL_MR_FETCH_TIMEOUT', 15))
DEFAULT_VARIANT = os.getenv('SOBEL_MR_VARIANT', 'pixel')

# Message size limits for the intermediate file fetch (100MB)
GRPC_OPTIONS = [
    ('grpc.max_send_message_length', 100 * 1024 * 1024),
    ('grpc.max_receive_message_length', 100 * 1024 * 1024),
]

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
