"""
Worker server for the Sobel MapReduce pipeline.
Serves intermediate map output to reducers running on other hosts.
"""

import os
import uuid
import grpc
import logging
import argparse
from concurrent import futures

from .. import config
from .protocol import FETCH_METHOD, SERVICE_NAME, decode_file_request
from .task_executor import TaskExecutor

logger = logging.getLogger(__name__)


class WorkerServicer:
    """Implementation of the worker gRPC service."""

    def __init__(self, task_executor: TaskExecutor):
        self.task_executor = task_executor

    def FetchIntermediateFile(self, file_name: str, context: grpc.ServicerContext) -> bytes:
        """Serves an intermediate file to another worker for the shuffle phase."""
        intermediate_dir = os.path.realpath(self.task_executor.intermediate_dir)
        file_path = os.path.realpath(os.path.join(intermediate_dir, file_name))

        if os.path.dirname(file_path) != intermediate_dir:
            logger.error(f"Rejected fetch outside intermediate dir: {file_name}")
            context.abort(grpc.StatusCode.INVALID_ARGUMENT, f"Invalid file name {file_name}")

        if not os.path.exists(file_path):
            logger.error(f"Intermediate file not found: {file_name}")
            context.abort(grpc.StatusCode.NOT_FOUND, f"File {file_name} not found on this worker.")

        with open(file_path, 'rb') as f:
            file_data = f.read()

        logger.info(f"Served file {file_name} ({len(file_data)} bytes)")
        return file_data


def add_worker_servicer_to_server(servicer: WorkerServicer, server: grpc.Server):
    """Register the servicer with a generic handler (raw bytes responses)."""
    handlers = {
        FETCH_METHOD: grpc.unary_unary_rpc_method_handler(
            servicer.FetchIntermediateFile,
            request_deserializer=decode_file_request,
            response_serializer=None,
        ),
    }
    server.add_generic_rpc_handlers((grpc.method_handlers_generic_handler(SERVICE_NAME, handlers),))


class WorkerServer:
    """Hosts the worker service over a shared directory."""

    def __init__(self, shared_dir: str, max_workers: int = config.MAX_WORKERS):
        self.worker_id = f"worker-{uuid.uuid4().hex[:8]}"
        self.shared_dir = shared_dir
        self.task_executor = TaskExecutor(shared_dir)
        self.server_port = None  # Will be set when server starts

        self.server = grpc.server(futures.ThreadPoolExecutor(max_workers=max_workers), options=config.GRPC_OPTIONS)
        self.servicer = WorkerServicer(self.task_executor)
        add_worker_servicer_to_server(self.servicer, self.server)

    def start(self, port: int = config.WORKER_PORT, host: str = '[::]') -> int:
        """Start the server; returns the bound port (useful with port 0)."""
        addr = f'{host}:{port}'
        self.server_port = self.server.add_insecure_port(addr)
        if not self.server_port:
            raise RuntimeError(f"Failed to bind worker server to {addr}")
        self.server.start()
        logger.info(f"Worker {self.worker_id} server started on {host}:{self.server_port}")
        return self.server_port

    def stop(self, grace: float = 0):
        self.server.stop(grace).wait()
        logger.info(f"Worker {self.worker_id} server stopped")


def serve(shared_dir: str = config.SHARED_DIR, port: int = config.WORKER_PORT):
    """Start the worker gRPC server and block until interrupted."""
    worker = WorkerServer(shared_dir)
    worker.start(port=port)

    try:
        worker.server.wait_for_termination()
    except KeyboardInterrupt:
        logger.info(f"Worker {worker.worker_id} server shutting down")
        worker.stop()


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format=config.LOG_FORMAT)

    parser = argparse.ArgumentParser(description='Sobel MapReduce Worker Server')
    parser.add_argument('--shared-dir', default=config.SHARED_DIR,
                        help=f'Shared directory holding intermediate files (default: {config.SHARED_DIR})')
    parser.add_argument('--port', type=int, default=config.WORKER_PORT,
                        help=f'Worker server port (default: {config.WORKER_PORT})')

    args = parser.parse_args()
    serve(shared_dir=args.shared_dir, port=args.port)
