# tests/test_cli.py

import json
import logging

import pytest

from visual_catalog import cli
from visual_catalog.components.similarity_search import SimilaritySearchEngine

RED = (0, 0, 255)
BLUE = (255, 0, 0)


@pytest.fixture(autouse=True)
def restore_logging():
    """setup_logging replaces the root handlers; put them back afterwards"""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def config_file(search_config, tmp_path):
    path = tmp_path / "config.yaml"
    search_config.save(str(path))
    return str(path)


@pytest.fixture
def stub_engine(monkeypatch, extractor_factory):
    """Make the CLI build engines around the stub extractor"""
    monkeypatch.setattr(
        cli, "SimilaritySearchEngine",
        lambda config: SimilaritySearchEngine(config, feature_extractor=extractor_factory())
    )


def test_no_command_prints_help(capsys):
    assert cli.main_cli([]) == 0
    assert "usage" in capsys.readouterr().out


def test_init_reports_missing_model(config_file, capsys):
    assert cli.main_cli(['-c', config_file, 'init']) == 1

    out = capsys.readouterr().out
    assert "Embedding model: failed" in out
    assert "Vector store: ready" in out


def test_stats_on_empty_store(config_file, capsys):
    assert cli.main_cli(['-c', config_file, 'stats']) == 0
    assert "Embeddings: 0" in capsys.readouterr().out


def test_search_without_model_fails(config_file, write_image, capsys):
    query = write_image("query.png", RED)
    assert cli.main_cli(['-c', config_file, 'search', query]) == 1
    assert "could not embed" in capsys.readouterr().out


def test_index_search_remove(config_file, write_image, stub_engine, tmp_path, capsys):
    write_image("photos/red_car.png", RED)
    write_image("photos/nested/blue_car.png", BLUE)
    query = write_image("query.png", RED)
    output = tmp_path / "results.json"

    assert cli.main_cli(['-c', config_file, 'index', str(tmp_path / "photos")]) == 0
    assert cli.main_cli(['-c', config_file, 'search', query, '-k', '1',
                         '-o', str(output)]) == 0

    results = json.loads(output.read_text())
    assert [r["entity_id"] for r in results] == ["red_car"]
    assert results[0]["similarity"] == pytest.approx(1.0)

    assert cli.main_cli(['-c', config_file, 'remove', 'red_car']) == 0
    capsys.readouterr()
    assert cli.main_cli(['-c', config_file, 'stats']) == 0
    assert "Embeddings: 1" in capsys.readouterr().out


def test_add_command(config_file, write_image, stub_engine, capsys):
    photo = write_image("car.png", BLUE)

    assert cli.main_cli(['-c', config_file, 'add', 'car42', photo]) == 0
    assert "Stored embedding for car42" in capsys.readouterr().out


def test_logs_written_to_configured_dir(config_file, search_config, tmp_path):
    cli.main_cli(['-c', config_file, '--structured-logs', 'stats'])

    log_dir = tmp_path / "logs"
    assert (log_dir / "visual_catalog.log").exists()
    assert (log_dir / "visual_catalog_structured.json").exists()
