"""
Configuration tests - seed and rules loading, config validation.
"""

import json

import pytest

from mockbackend.core import config


def test_unset_paths_load_empty(monkeypatch):
    monkeypatch.setattr(config, 'SEED_PATH', '')
    monkeypatch.setattr(config, 'RULES_PATH', '')
    assert config.load_seed_data() == {}
    assert config.load_rules() == {}


def test_load_seed_data_from_file(tmp_path):
    seed = {'data': {'recipes': {'r1': {'name': 'Pancakes'}}}, 'users': {}}
    path = tmp_path / 'seed.json'
    path.write_text(json.dumps(seed), encoding='utf-8')

    assert config.load_seed_data(str(path)) == seed


def test_load_rules_from_configured_path(tmp_path, monkeypatch):
    path = tmp_path / 'rules.json'
    path.write_text('{"users": {".create": false}}', encoding='utf-8')
    monkeypatch.setattr(config, 'RULES_PATH', str(path))

    assert config.load_rules() == {'users': {'.create': False}}


@pytest.mark.parametrize('content', ['{not json', '[1, 2]'])
def test_malformed_file_raises_value_error(tmp_path, content):
    path = tmp_path / 'broken.json'
    path.write_text(content, encoding='utf-8')

    with pytest.raises(ValueError):
        config.load_seed_data(str(path))


def test_missing_file_raises_value_error(tmp_path):
    with pytest.raises(ValueError):
        config.load_rules(str(tmp_path / 'absent.json'))


def test_validate_config_defaults(monkeypatch):
    monkeypatch.setattr(config, 'SEED_PATH', '')
    monkeypatch.setattr(config, 'RULES_PATH', '')
    monkeypatch.setattr(config, 'LOG_LEVEL', 'INFO')
    monkeypatch.setattr(config, 'PORT', 3030)
    monkeypatch.setattr(config, 'ADMIN_HEADER', 'X-Admin')
    monkeypatch.setattr(config, 'AUTH_HEADER', 'X-Authorization')
    assert config.validate_config() == []


def test_validate_config_reports_issues(monkeypatch, tmp_path):
    monkeypatch.setattr(config, 'PORT', 0)
    monkeypatch.setattr(config, 'LOG_LEVEL', 'VERBOSE')
    monkeypatch.setattr(config, 'SEED_PATH', str(tmp_path / 'missing.json'))
    monkeypatch.setattr(config, 'RULES_PATH', '')
    monkeypatch.setattr(config, 'AUTH_HEADER', 'X-Authorization')
    monkeypatch.setattr(config, 'ADMIN_HEADER', 'x-authorization')

    issues = config.validate_config()
    assert len(issues) == 4
    assert any('SEED_PATH' in issue for issue in issues)


def test_debug_enabled(monkeypatch):
    monkeypatch.setenv('DEBUG', 'false')
    assert not config.debug_enabled()
    monkeypatch.setenv('DEBUG', 'TRUE')
    assert config.debug_enabled()
