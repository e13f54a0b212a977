from pathlib import Path

from focus_coach.core import settings
from focus_coach.storage import config as config_module
from focus_coach.storage.config import AppConfig, load_config, save_config, update_config
from focus_coach.storage.device import get_device_id


def test_linux_data_dir_with_xdg():
    env = {"XDG_DATA_HOME": "/tmp/xdg"}
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="linux",
        env=env,
        home=Path("/home/test"),
    )
    assert result == Path("/tmp/xdg") / settings.APP_NAME


def test_linux_data_dir_default_home():
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="linux",
        env={},
        home=Path("/home/test"),
    )
    assert result == Path("/home/test/.local/share") / settings.APP_NAME


def test_macos_data_dir():
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="darwin",
        env={},
        home=Path("/Users/test"),
    )
    expected = Path("/Users/test/Library/Application Support") / settings.APP_NAME
    assert result == expected


def test_windows_data_dir_appdata():
    env = {"APPDATA": "C:/Users/test/AppData/Roaming"}
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="win32",
        env=env,
        home=Path("C:/Users/test"),
    )
    expected = Path(env["APPDATA"]) / settings.APP_NAME
    assert result == expected


def test_data_dir_override_wins():
    env = {"FOCUS_COACH_DATA_DIR": "/srv/focus", "XDG_DATA_HOME": "/tmp/xdg"}
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="linux",
        env=env,
        home=Path("/home/test"),
    )
    assert result == Path("/srv/focus")


def test_runtime_paths_inside_data_dir():
    assert settings.DB_PATH.parent == settings.DATA_DIR
    assert settings.CONFIG_PATH.parent == settings.DATA_DIR
    assert settings.DEVICE_ID_PATH.parent == settings.DATA_DIR
    assert settings.SYNC_LOG_PATH.parent == settings.LOG_DIR
    assert settings.MIGRATION_LOG_PATH.parent == settings.LOG_DIR


def test_sync_defaults():
    assert settings.SYNC.batch_size == 5
    assert settings.SYNC.max_retry_count == 3
    assert settings.SYNC.debounce_sec == 0.5
    assert settings.SYNC.reconnect_delay_sec == 1.0
    assert settings.SYNC.periodic_interval_sec == 60.0


def test_config_round_trip(tmp_path):
    path = tmp_path / "config.json"
    assert load_config(path) == AppConfig()

    save_config(AppConfig(remote_url="https://db.example", user_id="user-1"), path)
    updated = update_config(path, access_token="jwt", unknown="ignored")

    assert updated.remote_url == "https://db.example"
    assert load_config(path).access_token == "jwt"
    assert [p.name for p in tmp_path.iterdir()] == ["config.json"]


def test_config_falls_back_to_environment(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text("[not a mapping]", encoding="utf-8")
    monkeypatch.setattr(
        config_module, "REMOTE", settings.RemoteSettings(url="https://env.example", api_key="k")
    )

    cfg = load_config(path)

    assert cfg.resolved_remote_url() == "https://env.example"
    assert cfg.resolved_api_key() == "k"


def test_device_id_is_stable(tmp_path):
    path = tmp_path / "device_id.txt"

    first = get_device_id(path)

    assert first.startswith("focus-coach-")
    assert get_device_id(path) == first
    assert path.read_text(encoding="utf-8") == first
    assert [p.name for p in tmp_path.iterdir()] == ["device_id.txt"]


def test_device_id_keeps_existing_value(tmp_path):
    path = tmp_path / "nested" / "device_id.txt"
    path.parent.mkdir()
    path.write_text("  focus-coach-abc123\n", encoding="utf-8")

    assert get_device_id(path) == "focus-coach-abc123"


def test_config_drops_non_string_values(tmp_path):
    path = tmp_path / "config.json"
    path.write_text('{"remote_url": 42, "user_id": "user-3"}', encoding="utf-8")

    cfg = load_config(path)

    assert cfg.remote_url is None
    assert cfg.user_id == "user-3"
