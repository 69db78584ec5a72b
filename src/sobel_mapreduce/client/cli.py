"""
Command line entry point: filter an image with one of the Sobel variants.
"""

import sys
import time
import logging
import argparse

from .. import config
from ..coordinator.runner import JobRunner
from ..errors import SobelMapReduceError
from ..image import read_image, write_image
from ..sobel import filter_image
from .monitoring import format_duration, format_job_progress

logger = logging.getLogger(__name__)

VARIANTS = ['pixel', 'ordered', 'image', 'reference']


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='sobel-filter',
        description="Sobel edge detection over a plain-text grayscale matrix",
    )
    parser.add_argument("input", help="Input matrix file")
    parser.add_argument("output", help="Output matrix file")
    parser.add_argument("--variant", choices=VARIANTS, default=config.DEFAULT_VARIANT,
                        help="pixel: per-pixel fold (default); ordered: sorted component groups, "
                             "single reducer; image: whole image per reducer; reference: no MapReduce")
    parser.add_argument("--num-map", type=int, default=config.NUM_MAP_TASKS, help="Number of map tasks")
    parser.add_argument("--num-reduce", type=int, default=config.NUM_REDUCE_TASKS, help="Number of reduce tasks")
    parser.add_argument("--max-workers", type=int, default=config.MAX_WORKERS,
                        help="Tasks executed concurrently")
    parser.add_argument("--combiner", action="store_true", help="Pre-sum contributions in map tasks")
    parser.add_argument("--shared-dir", default=config.SHARED_DIR, help="Directory for intermediate files")
    parser.add_argument("--worker-address", default=None,
                        help="host:port of a worker server exporting --shared-dir; reducers fetch through it")
    parser.add_argument("--metrics", default=None, help="Write job metrics as JSON to this path")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only log warnings and errors")
    return parser


def run_reference(args) -> int:
    image = read_image(args.input)
    write_image(filter_image(image), args.output)
    print(f"Filtered {image.rows}x{image.cols} image -> {args.output}")
    return 0


def run_job(args) -> int:
    runner = JobRunner(shared_dir=args.shared_dir, max_workers=args.max_workers,
                       worker_address=args.worker_address)

    def report(job_state):
        if not args.quiet:
            print(format_job_progress(job_state))

    start_time = time.time()
    job_state = runner.run(
        args.input, args.output,
        job_name=args.variant,
        num_map_tasks=args.num_map,
        num_reduce_tasks=args.num_reduce,
        use_combiner=args.combiner,
        progress_callback=report,
    )

    metrics = runner.metrics.get_metrics(job_state.job_id)
    if args.metrics and metrics:
        metrics.save_to_file(args.metrics)
    print(f"Job {job_state.job_id} {job_state.status} in {format_duration(time.time() - start_time)} -> {args.output}")
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    # Bad invocations exit with status 2 before any work happens
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format=config.LOG_FORMAT,
    )

    try:
        if args.variant == 'reference':
            return run_reference(args)
        return run_job(args)
    except (SobelMapReduceError, OSError) as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
