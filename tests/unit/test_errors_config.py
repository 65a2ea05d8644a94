"""Unit tests for errors and configuration loading."""

import pytest

from imagewatch.utils.config import (
    ImageWatchConfig,
    get_config,
    load_config,
    set_config,
)
from imagewatch.utils.errors import (
    ConfigurationError,
    ImageNotFoundError,
    ImageWatchError,
    ReconciliationError,
    ValidationError,
    validate_image_name,
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Run from an empty directory with no overrides set."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    for name in (
        "IMAGEWATCH_DATABASE_URL",
        "IMAGEWATCH_SITE_URL",
        "IMAGEWATCH_WEBHOOK_URL",
        "IMAGEWATCH_QUEUE_BACKEND",
        "IMAGEWATCH_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


class TestErrors:
    """Tests for the exception hierarchy."""

    def test_base_error(self):
        """Test code and details."""
        error = ImageWatchError("boom", code="X", details={"a": 1})
        assert str(error) == "boom"
        op = error.to_operation_error()
        assert op.code == "X"
        assert op.details == {"a": 1}

    def test_image_not_found(self):
        """Test the image name is carried in the details."""
        error = ImageNotFoundError("org/app")
        assert error.code == "IMAGE_NOT_FOUND"
        assert error.details["image_name"] == "org/app"
        assert isinstance(error, ImageWatchError)

    def test_reconciliation_error_includes_cause(self):
        """Test the cause is part of the message."""
        error = ReconciliationError("org/app", cause=RuntimeError("disk full"))
        assert "disk full" in error.message
        assert error.image_name == "org/app"


class TestValidateImageName:
    """Tests for validate_image_name."""

    @pytest.mark.parametrize("name", ["nginx", "library/nginx", "my-org/my_app.v2"])
    def test_valid(self, name):
        """Test accepted names."""
        validate_image_name(name)

    @pytest.mark.parametrize("name", ["", "-bad", "org/app:1.0", "org/app@sha256:x", "Org/App", "a/b/c"])
    def test_invalid(self, name):
        """Test rejected names."""
        with pytest.raises(ValidationError):
            validate_image_name(name)


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self, clean_env):
        """Test defaults when no file exists."""
        config = load_config()
        assert config.queue.backend == "memory"
        assert config.notifications.max_attempts == 5
        assert config.site.official_namespace == "library"

    def test_explicit_file(self, clean_env):
        """Test values are read from YAML."""
        path = clean_env / "custom.yaml"
        path.write_text("database:\n  url: sqlite:///other.db\nregistry:\n  rate_limit_delay: 3\n")

        config = load_config(path)

        assert config.database.url == "sqlite:///other.db"
        assert config.registry.rate_limit_delay == 3.0

    def test_default_location(self, clean_env):
        """Test a config file in the working directory is found."""
        (clean_env / ".imagewatch.yaml").write_text("site:\n  site_url: https://found.test\n")
        assert load_config().site.site_url == "https://found.test"

    def test_env_override(self, clean_env, monkeypatch):
        """Test environment variables win over the file."""
        path = clean_env / "custom.yaml"
        path.write_text("database:\n  url: sqlite:///file.db\n")
        monkeypatch.setenv("IMAGEWATCH_DATABASE_URL", "sqlite:///env.db")

        assert load_config(path).database.url == "sqlite:///env.db"

    def test_missing_file(self, clean_env):
        """Test an explicit missing file is an error."""
        with pytest.raises(ConfigurationError):
            load_config(clean_env / "nope.yaml")

    def test_invalid_yaml(self, clean_env):
        """Test unparseable YAML is an error."""
        path = clean_env / "bad.yaml"
        path.write_text("database: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_not_a_mapping(self, clean_env):
        """Test a YAML list is rejected."""
        path = clean_env / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_invalid_value(self, clean_env, monkeypatch):
        """Test values that fail validation are configuration errors."""
        monkeypatch.setenv("IMAGEWATCH_QUEUE_BACKEND", "carrier-pigeon")
        with pytest.raises(ConfigurationError):
            load_config()

    def test_global_config(self):
        """Test set_config replaces the global instance."""
        config = ImageWatchConfig()
        set_config(config)
        assert get_config() is config
