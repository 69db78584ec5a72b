"""
Sobel edge detection expressed as a MapReduce job.
Per-pixel and per-image variants plus the single-process reference filter.
"""

__version__ = "0.3.0"
