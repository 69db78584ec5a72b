import os
import pickle
import shutil
import tempfile
import unittest

from sobel_mapreduce.aggregator import ImageAssembler
from sobel_mapreduce.errors import OrderingViolationError
from sobel_mapreduce.image import format_image
from sobel_mapreduce.shuffle import partition_for
from sobel_mapreduce.sobel import filter_image
from sobel_mapreduce.worker.pixel_source import split_image_input
from sobel_mapreduce.worker.task_executor import TaskExecutor

from conftest import make_random_image

# Ordered job whose keys are hashed across reducers, breaking the
# single-aggregator contract
SPLIT_ORDERED_JOB = '''
from sobel_mapreduce.jobs.ordered_components import map_fn, combine_fn, create_aggregator
from sobel_mapreduce.shuffle import partition_for

MAX_REDUCE_TASKS = None


def partition_fn(key, num_partitions):
    return partition_for(key, num_partitions)
'''


class TestTaskExecutor(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.executor = TaskExecutor(os.path.join(self.test_dir, 'shared'))

        self.image = make_random_image(6, 7, seed=3)
        self.shape = self.image.shape
        self.input_path = os.path.join(self.test_dir, 'input.txt')
        with open(self.input_path, 'w') as f:
            f.write(format_image(self.image))
        self.splits = split_image_input(self.input_path, 2)

    def tearDown(self):
        """Clean up test directories after each test."""
        shutil.rmtree(self.test_dir)

    def _run_maps(self, job_name, num_reduce_tasks, use_combiner=False):
        locations = {}
        for split in self.splits:
            files = self.executor.execute_map('test_job', split.split_id, self.input_path, job_name,
                                              split, self.shape, num_reduce_tasks, use_combiner)
            for name in files:
                partition_id = int(name.rsplit('_part_', 1)[1].split('.')[0])
                locations.setdefault(partition_id, []).append((None, name))
        return locations

    def test_map_execution(self):
        result_files = self._run_maps('pixel', 2)
        self.assertEqual(len(result_files), 2)

        for partition_id, locations in result_files.items():
            for _, name in locations:
                with open(os.path.join(self.executor.intermediate_dir, name), 'rb') as f:
                    mapped_data = pickle.load(f)
                self.assertTrue(mapped_data)
                for key, (component, value) in mapped_data:
                    self.assertEqual(partition_for(key, 2), partition_id)
                    self.assertIn(str(component), ('H', 'V'))

        stats = self.executor.get_task_stats('test_job', 0, 'map')
        self.assertEqual(stats['pixels_read'], self.splits[0].num_pixels)
        self.assertEqual(stats['records_emitted'], stats['records_written'])
        self.assertGreater(stats['memory_rss'], 0)

    def test_combiner_reduces_records(self):
        self._run_maps('pixel', 1, use_combiner=True)
        stats = self.executor.get_task_stats('test_job', 0, 'map')
        self.assertLess(stats['records_written'], stats['records_emitted'])

        with open(os.path.join(self.executor.intermediate_dir, 'test_job_map_0_part_0.pickle'), 'rb') as f:
            mapped_data = pickle.load(f)
        keys = [key for key, _ in mapped_data]
        # At most one partial per component and pixel
        self.assertEqual(len(keys), len(set((key, v[0]) for key, v in mapped_data)))

    def test_reduce_execution(self):
        for job_name, num_reduce in (('pixel', 3), ('ordered', 1), ('image', 1)):
            with self.subTest(job=job_name):
                locations = self._run_maps(job_name, num_reduce)
                assembler = ImageAssembler(self.shape)
                for partition_id, shuffle_locations in locations.items():
                    outfile = self.executor.execute_reduce('test_job', partition_id, partition_id,
                                                           shuffle_locations, job_name, self.shape)
                    assembler.add_all(self.executor.read_reduce_output(outfile))
                self.assertEqual(assembler.build(), filter_image(self.image))
                self.executor.cleanup_job('test_job')

    def test_progress_tracking(self):
        self._run_maps('pixel', 1)
        progress, state = self.executor.get_task_progress('test_job', 1, 'map')
        self.assertEqual(progress, 1.0)
        self.assertEqual(state, 'COMPLETED')
        self.assertEqual(self.executor.get_task_progress('test_job', 9, 'map'), (0.0, 'UNKNOWN'))

    def test_cleanup(self):
        self._run_maps('pixel', 2)
        self.assertTrue(os.listdir(self.executor.intermediate_dir))
        self.assertEqual(len(self.executor.task_stats), 2)
        self.executor.cleanup_job('test_job')
        self.assertEqual(os.listdir(self.executor.intermediate_dir), [])
        self.assertEqual(self.executor.task_progress, {})
        self.assertEqual(self.executor.task_stats, {})
        self.assertEqual(self.executor.get_task_progress('test_job', 0, 'map'), (0.0, 'UNKNOWN'))

    def test_error_handling(self):
        """Test error cases in task execution."""
        split = self.splits[0]
        with self.assertRaises(FileNotFoundError):
            self.executor.execute_map('test_job', 0, os.path.join(self.test_dir, 'missing.txt'),
                                      'pixel', split, self.shape, 1)
        self.assertEqual(self.executor.get_task_progress('test_job', 0, 'map'), (0.0, 'FAILED'))

        with self.assertRaises(ImportError):
            self.executor.execute_map('test_job', 0, self.input_path, 'no_such_job_module', split, self.shape, 1)

        with self.assertRaises(FileNotFoundError):
            self.executor.execute_reduce('test_job', 0, 0, [(None, 'missing.pickle')], 'pixel', self.shape)

    def test_ordered_job_split_across_reducers(self):
        job_file = os.path.join(self.test_dir, 'split_ordered.py')
        with open(job_file, 'w') as f:
            f.write(SPLIT_ORDERED_JOB)

        locations = self._run_maps(job_file, 2)
        self.assertEqual(len(locations), 2)
        with self.assertRaises(OrderingViolationError):
            self.executor.execute_reduce('test_job', 0, 0, locations[0], job_file, self.shape)


if __name__ == '__main__':
    unittest.main()
