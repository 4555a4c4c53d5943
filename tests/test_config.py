"""Configuration loading and validation tests."""

import pytest

from cutover.config import Config, ConfigValidationError


def write_config(tmp_path, text):
    path = tmp_path / "cutover.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_loads_valid_configuration(tmp_path):
    path = write_config(tmp_path, """
project:
  name: dashboard
  working_dir: app
deploy:
  max_downtime_ms: 15000
  features: [billing_v2]
  rollout:
    - {feature: billing_v2, percentage: 10}
    - {feature: billing_v2, percentage: 50}
commands:
  migrate: npx prisma migrate deploy
  restart: systemctl restart dashboard
health:
  base_url: http://localhost:3000
  endpoints:
    /api/health: [200]
    /api/auth/session: [200, 401]
""")

    config = Config(str(path)).load()
    settings = config.settings

    assert settings.project.name == "dashboard"
    assert settings.deploy.max_downtime_ms == 15000
    assert [s.percentage for s in settings.deploy.rollout] == [10, 50]
    assert settings.health.endpoints["/api/auth/session"] == [200, 401]
    assert settings.snapshot.directory == ".cutover/snapshots"
    assert config.project_dir == tmp_path / "app"
    assert config.resolve_path(".env") == tmp_path / "app" / ".env"
    assert config.resolve_path("/etc/app.env").is_absolute()


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config(str(tmp_path / "nope.yaml")).load()


def test_invalid_yaml(tmp_path):
    path = write_config(tmp_path, "project: [unclosed\n")

    with pytest.raises(ConfigValidationError, match="Failed to parse YAML"):
        Config(str(path)).load()


def test_top_level_must_be_a_mapping(tmp_path):
    path = write_config(tmp_path, "- one\n- two\n")

    with pytest.raises(ConfigValidationError) as exc_info:
        Config(str(path)).load()
    assert "mapping" in str(exc_info.value)


def test_validation_errors_are_listed_by_location(tmp_path):
    path = write_config(tmp_path, """
project:
  name: ""
deploy:
  max_downtime_ms: 0
logging:
  level: chatty
""")

    with pytest.raises(ConfigValidationError) as exc_info:
        Config(str(path)).load()

    error = exc_info.value
    locations = [tuple(e["loc"]) for e in error.errors]
    assert ("project", "name") in locations
    assert ("deploy", "max_downtime_ms") in locations
    assert ("logging", "level") in locations
    assert "• deploy -> max_downtime_ms:" in str(error)


def test_rollout_percentage_must_not_decrease(tmp_path):
    path = write_config(tmp_path, """
project: {name: dashboard}
deploy:
  rollout:
    - {feature: search, percentage: 50}
    - {feature: search, percentage: 20}
""")

    with pytest.raises(ConfigValidationError) as exc_info:
        Config(str(path)).load()
    assert "decreases from 50 to 20" in str(exc_info.value)


def test_service_commands_need_stop_and_start(tmp_path):
    path = write_config(tmp_path, """
project: {name: dashboard}
commands:
  stop: systemctl stop dashboard
""")

    with pytest.raises(ConfigValidationError) as exc_info:
        Config(str(path)).load()
    assert "'stop' and 'start'" in str(exc_info.value)


def test_health_endpoints_need_base_url(tmp_path):
    path = write_config(tmp_path, """
project: {name: dashboard}
health:
  endpoints:
    /api/health: [200]
""")

    with pytest.raises(ConfigValidationError, match="validation failed"):
        Config(str(path)).load()


def test_validate_without_raising():
    config = Config("unused.yaml")
    config.data = {"deploy": {}}

    errors = config.validate()

    assert errors[0]["loc"] == ["project"]
    assert config.settings is None
