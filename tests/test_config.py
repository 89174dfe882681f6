import importlib

from practice_analytics.config import dashboard_config


def test_project_root_is_the_checkout():
    assert (dashboard_config.PROJECT_ROOT / "pyproject.toml").exists()
    assert (dashboard_config.PROJECT_ROOT / "practice_analytics").is_dir()


def test_data_dir_defaults_under_project_root_and_follows_env(monkeypatch, tmp_path):
    monkeypatch.delenv("PRACTICE_DATA_DIR", raising=False)
    assert importlib.reload(dashboard_config).DATA_DIR == dashboard_config.PROJECT_ROOT / "data"

    monkeypatch.setenv("PRACTICE_DATA_DIR", str(tmp_path))
    assert importlib.reload(dashboard_config).DATA_DIR == tmp_path

    monkeypatch.delenv("PRACTICE_DATA_DIR")
    importlib.reload(dashboard_config)
