"""Test configuration loading."""

from pathlib import Path

import pytest

from lyracopy.domain.exceptions import ConfigurationError
from lyracopy.infrastructure.config import ConfigLoader, LyraCopyConfig


@pytest.fixture
def loader(tmp_path, clean_env):
    return ConfigLoader(config_path=tmp_path / 'lyracopy.yaml')


def test_defaults_without_file(loader):
    config = loader.load()

    assert config.source is None
    assert config.destination is None
    assert config.log_file == Path('lyra_copy.jsonl')
    assert config.kill_grace_seconds == 1.0
    assert config.accepted_exit_codes == [0, 24]
    assert config.resume_policy == 'restart'
    assert not config.resume_from_log
    assert config.history_limit == 100


def test_yaml_file(tmp_path, loader):
    (tmp_path / 'lyracopy.yaml').write_text(
        "source: /data/photos\n"
        "destination: /backup/photos\n"
        "resume_policy: Resume\n"
        "dry_run_preview: true\n"
        "kill_grace_seconds: 2.5\n",
        encoding='utf-8',
    )

    config = loader.load()

    assert config.source == Path('/data/photos')
    assert config.destination == Path('/backup/photos')
    assert config.resume_from_log
    assert config.dry_run_preview is True
    assert config.kill_grace_seconds == 2.5


def test_environment_overrides_file(tmp_path, loader, clean_env):
    (tmp_path / 'lyracopy.yaml').write_text("history_limit: 10\nlog_file: file.jsonl\n", encoding='utf-8')
    clean_env.setenv('LYRACOPY_HISTORY_LIMIT', '20')
    clean_env.setenv('LOG', str(tmp_path / 'env.jsonl'))

    config = loader.load()

    assert config.history_limit == 20
    assert config.log_file == tmp_path / 'env.jsonl'


def test_short_path_variables(loader, clean_env):
    clean_env.setenv('SRC', '/from')
    clean_env.setenv('DST', '/to')

    config = loader.load()

    assert config.source == Path('/from')
    assert config.destination == Path('/to')


def test_prefixed_variables_win_over_short_ones(loader, clean_env):
    clean_env.setenv('SRC', '/short')
    clean_env.setenv('DST', '/short-dst')
    clean_env.setenv('LYRACOPY_SOURCE', '/long')
    clean_env.setenv('LYRACOPY_DEST', '/long-dst')

    assert loader.load().source == Path('/long')


def test_overrides_win_and_none_is_ignored(loader, clean_env):
    clean_env.setenv('LYRACOPY_RESUME_POLICY', 'resume')

    config = loader.load(overrides={'resume_policy': 'restart', 'log_file': None, 'job_id': 'abc'})

    assert config.resume_policy == 'restart'
    assert config.log_file == Path('lyra_copy.jsonl')
    assert config.job_id == 'abc'


def test_invalid_numeric_env_is_ignored(loader, clean_env):
    clean_env.setenv('LYRACOPY_KILL_GRACE', 'soon')

    assert loader.load().kill_grace_seconds == 1.0


def test_unknown_keys_are_ignored(tmp_path, loader):
    (tmp_path / 'lyracopy.yaml').write_text("colour: blue\n", encoding='utf-8')

    assert isinstance(loader.load(), LyraCopyConfig)


@pytest.mark.parametrize("content", [
    "resume_policy: sometimes\n",
    "kill_grace_seconds: 0\n",
    "history_limit: -5\n",
    "accepted_exit_codes: [24]\n",
    "source: /only/source\n",
    "log_level: chatty\n",
    "- just\n- a list\n",
    "source: [unclosed\n",
])
def test_invalid_configuration(tmp_path, loader, content):
    (tmp_path / 'lyracopy.yaml').write_text(content, encoding='utf-8')

    with pytest.raises(ConfigurationError):
        loader.load()


def test_dataclass_normalizes_values():
    config = LyraCopyConfig(source='~/in', destination='/out', log_level='debug', resume_policy='RESUME')

    assert config.source == Path('~/in').expanduser()
    assert config.destination == Path('/out')
    assert config.log_level == 'DEBUG'
    assert config.resume_policy == 'resume'
