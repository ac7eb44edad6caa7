# tests/test_config.py

import yaml

from visual_catalog.config import SystemConfig
from visual_catalog.core.lazy_resource import RetryPolicy


def test_missing_file_gives_defaults(tmp_path):
    config = SystemConfig.load(str(tmp_path / "absent.yaml"))

    assert config.database_path == "data/vectors.db"
    assert config.feature_extraction.model_name == "mobilenetv2_100"
    assert config.feature_extraction.input_size == 224
    assert config.similarity_search.max_results == 5
    assert config.initialization.max_attempts == 1


def test_save_and_load(tmp_path):
    path = str(tmp_path / "config.yaml")
    config = SystemConfig()
    config.n_workers = 2
    config.feature_extraction.model_path = "/opt/models/mnv2.pth"
    config.similarity_search.max_results = 12
    config.initialization.max_attempts = 3
    config.save(path)

    loaded = SystemConfig.load(path)

    assert loaded == config


def test_partial_file_keeps_other_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({
        'log_level': 'DEBUG',
        'similarity_search': {'max_results': 3},
        'unknown_key': True,
    }))

    config = SystemConfig.load(str(path))

    assert config.log_level == 'DEBUG'
    assert config.similarity_search.max_results == 3
    assert config.similarity_search.scan_batch_size == 256
    assert config.feature_extraction.device == "cpu"


def test_empty_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert SystemConfig.load(str(path)) == SystemConfig()


def test_retry_policy_from_config():
    config = SystemConfig()
    config.initialization.max_attempts = 4
    config.initialization.initial_delay = 0.1

    policy = config.initialization.retry_policy()

    assert isinstance(policy, RetryPolicy)
    assert policy.max_attempts == 4
    assert policy.initial_delay == 0.1
