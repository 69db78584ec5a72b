"""Map/reduce task execution and the worker shuffle service."""
