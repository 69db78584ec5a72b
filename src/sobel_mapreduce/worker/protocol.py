"""
Wire names for the worker service.

The service is registered through a generic gRPC handler, so requests
and responses travel as raw bytes without generated stubs.
"""

SERVICE_NAME = 'sobel_mapreduce.WorkerService'
FETCH_METHOD = 'FetchIntermediateFile'
FETCH_PATH = f'/{SERVICE_NAME}/{FETCH_METHOD}'


def encode_file_request(file_name: str) -> bytes:
    return file_name.encode('utf-8')


def decode_file_request(data: bytes) -> str:
    return data.decode('utf-8')
