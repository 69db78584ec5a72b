"""
Tests for the sobel-filter command line
"""

import json
import os

import pytest

from sobel_mapreduce.client.cli import build_parser, main
from sobel_mapreduce.client.monitoring import format_duration, format_progress_bar
from sobel_mapreduce.image import read_image
from sobel_mapreduce.sobel import filter_image

from conftest import write_text


def test_missing_arguments_exit_2(temp_dir, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main([])
    assert excinfo.value.code == 2
    assert os.listdir(temp_dir) == []
    assert "usage" in capsys.readouterr().err


def test_unknown_variant_exit_2(temp_dir):
    with pytest.raises(SystemExit) as excinfo:
        main(['in.txt', 'out.txt', '--variant', 'fast'])
    assert excinfo.value.code == 2


def test_parser_defaults():
    args = build_parser().parse_args(['in.txt', 'out.txt'])
    assert args.variant == 'pixel'
    assert args.num_reduce == 1
    assert args.combiner is False
    assert args.worker_address is None


def test_reference_variant(image_file, temp_dir, random_image):
    output = os.path.join(temp_dir, 'out.txt')
    assert main([image_file(random_image), output, '--variant', 'reference', '-q']) == 0
    assert read_image(output) == filter_image(random_image)


@pytest.mark.parametrize("extra", [
    [],
    ['--num-map', '3', '--num-reduce', '2', '--combiner'],
    ['--variant', 'ordered'],
    ['--variant', 'image', '--num-map', '2'],
])
def test_mapreduce_variants(image_file, shared_dir, temp_dir, random_image, extra):
    output = os.path.join(temp_dir, 'nested', 'out.txt')
    argv = [image_file(random_image), output, '--shared-dir', shared_dir, '-q'] + extra
    assert main(argv) == 0
    assert read_image(output) == filter_image(random_image)


def test_progress_printed(image_file, shared_dir, temp_dir, random_image, capsys):
    main([image_file(random_image), os.path.join(temp_dir, 'out.txt'), '--shared-dir', shared_dir])
    out = capsys.readouterr().out
    assert "MAPPING" in out
    assert "COMPLETED" in out


def test_malformed_input_returns_1(shared_dir, temp_dir, capsys):
    path = write_text(os.path.join(temp_dir, 'bad.txt'), "2 2\n1 2 3\n")
    output = os.path.join(temp_dir, 'out.txt')
    assert main([path, output, '--shared-dir', shared_dir, '-q']) == 1
    assert "Error" in capsys.readouterr().err
    assert not os.path.exists(output)


def test_malformed_input_reference_returns_1(temp_dir):
    path = write_text(os.path.join(temp_dir, 'bad.txt'), "2 x\n")
    assert main([path, os.path.join(temp_dir, 'out.txt'), '--variant', 'reference', '-q']) == 1


@pytest.mark.parametrize("variant", ["reference", "pixel"])
def test_binary_input_returns_1(shared_dir, temp_dir, capsys, variant):
    path = os.path.join(temp_dir, 'binary.txt')
    with open(path, 'wb') as f:
        f.write(b"1 1\n\xff\n")
    output = os.path.join(temp_dir, 'out.txt')

    assert main([path, output, '--variant', variant, '--shared-dir', shared_dir, '-q']) == 1
    assert "Error" in capsys.readouterr().err
    assert not os.path.exists(output)


def test_missing_input_returns_1(temp_dir):
    assert main([os.path.join(temp_dir, 'none.txt'), os.path.join(temp_dir, 'out.txt'),
                 '--variant', 'reference', '-q']) == 1


def test_ordered_with_two_reducers_returns_1(image_file, shared_dir, temp_dir, random_image, capsys):
    output = os.path.join(temp_dir, 'out.txt')
    argv = [image_file(random_image), output, '--shared-dir', shared_dir, '-q',
            '--variant', 'ordered', '--num-reduce', '2']
    assert main(argv) == 1
    assert "at most 1" in capsys.readouterr().err
    assert not os.path.exists(output)


def test_metrics_file(image_file, shared_dir, temp_dir, random_image):
    metrics_path = os.path.join(temp_dir, 'metrics.json')
    argv = [image_file(random_image), os.path.join(temp_dir, 'out.txt'), '--shared-dir', shared_dir,
            '-q', '--combiner', '--metrics', metrics_path]
    assert main(argv) == 0

    with open(metrics_path) as f:
        metrics = json.load(f)
    assert metrics['job_name'] == 'pixel'
    assert metrics['pixels'] == 99
    assert metrics['use_combiner'] is True
    assert metrics['combiner_reduction_ratio'] > 0


def test_format_duration():
    assert format_duration(12.5) == "12.5s"
    assert format_duration(65) == "1m 5.0s"
    assert format_duration(3725) == "1h 2m 5.0s"


def test_format_progress_bar():
    assert format_progress_bar(0, 0, width=4) == "[░░░░] 0.0%"
    assert format_progress_bar(1, 2, width=4) == "[██░░] 50.0%"
    assert format_progress_bar(3, 3, width=4) == "[████] 100.0%"
