"""Tests for kernel configuration and logging setup."""

import io
import logging

import pytest

from brepcore.config import KernelConfig, TessellationSettings, get_config, set_config
from brepcore.curves import Line, nurbs_circle
from brepcore.geom import points_close
from brepcore.log import setup_logging
from brepcore.tessellation import tessellate_curve


@pytest.fixture
def restore_config():
    previous = get_config()
    yield
    set_config(previous)


def test_defaults():
    cfg = KernelConfig()
    assert cfg.closure_tolerance == 1e-10
    assert cfg.tessellation.min_segments == 4
    assert cfg.to_dict()["tessellation"]["max_segments"] == 1024


def test_yaml_round_trip(tmp_path):
    path = tmp_path / "kernel.yaml"
    cfg = KernelConfig(connect_tolerance=1e-4,
                       tessellation=TessellationSettings(tolerance=0.05, max_segments=64))
    cfg.save(path)
    assert KernelConfig.load(path) == cfg


def test_partial_yaml(tmp_path):
    path = tmp_path / "kernel.yaml"
    path.write_text("default_density: 2.5\ntessellation:\n  min_segments: 8\n")
    cfg = KernelConfig.load(path)
    assert cfg.default_density == 2.5
    assert cfg.tessellation.min_segments == 8
    assert cfg.tessellation.max_segments == 1024


def test_unknown_keys_rejected():
    with pytest.raises(ValueError):
        KernelConfig.from_dict({"closure_tol": 1.0})
    with pytest.raises(ValueError):
        KernelConfig.from_dict({"tessellation": {"segments": 3}})


def test_set_config_changes_defaults(restore_config):
    circle = nurbs_circle((0, 0), 1.0)
    before = len(tessellate_curve(circle))
    previous = set_config(KernelConfig(
        tessellation=TessellationSettings(tolerance=10.0, min_segments=5)))
    assert len(tessellate_curve(circle)) == 6
    set_config(previous)
    assert len(tessellate_curve(circle)) == before


def test_closure_tolerance_is_configurable(restore_config):
    nearly = Line((0, 0), (1e-6, 0))
    assert not nearly.is_closed()
    set_config(KernelConfig(closure_tolerance=1e-3))
    assert nearly.is_closed()
    assert points_close((0.0, 0.0), (5e-4, 0.0))
    assert not points_close((0.0, 0.0), (5e-4, 0.0), 1e-4)


def test_density_default(restore_config, graph, box_shell):
    set_config(KernelConfig(default_density=3.0))
    solid = graph.add_solid(box_shell)
    assert solid.material.density == 3.0
    assert solid.mass(graph) == pytest.approx(3.0)


def test_setup_logging(tmp_path, capsys):
    log_file = tmp_path / "brep.log"
    logger = setup_logging(logging.DEBUG, str(log_file))
    try:
        logging.getLogger("brepcore.store").debug("hello from the store")
        for handler in logger.handlers:
            handler.flush()
        assert "hello from the store" in log_file.read_text()
        assert "brepcore.store - DEBUG" in capsys.readouterr().err
    finally:
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)


def test_setup_logging_replaces_handlers():
    buffer = io.StringIO()
    setup_logging(logging.INFO)
    logger = setup_logging(logging.WARNING, stream=buffer)
    try:
        assert len(logger.handlers) == 1
        logging.getLogger("brepcore.validation").info("quiet")
        logging.getLogger("brepcore.validation").warning("loud")
        assert "quiet" not in buffer.getvalue()
        assert "brepcore.validation - WARNING - loud" in buffer.getvalue()
    finally:
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
