"""Tests for docmirror.config -- run configuration loading and validation.

NOT to be confused with test_config_loader.py (hierarchical YAML config)
or test_config_schema.py (Pydantic models). This tests the flat run
configuration: validate_config() and load_config().
"""

import logging

import pytest

from docmirror.config import Config, load_config, validate_config
from docmirror.errors import ConfigurationInvalid

VALID_PAGE_ID = "0123456789abcdef0123456789abcdef"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "NOTION_API_TOKEN",
        "NOTION_ROOT_PAGE_ID",
        "DOCMIRROR_DOCS_DIR",
        "DOCMIRROR_REQUEST_INTERVAL",
    ):
        monkeypatch.delenv(name, raising=False)


# -------------------------------------------------------------------------
# validate_config()
# -------------------------------------------------------------------------


class TestValidateConfig:
    """Tests for validate_config() -- token, page id and limit checks."""

    def test_valid_config(self, project):
        config = Config(api_token="secret_x", project_root=project)
        validate_config(config)  # should not raise

    def test_token_whitespace_stripped(self, project):
        config = Config(api_token="  secret_x \n", project_root=project)
        validate_config(config)
        assert config.api_token == "secret_x"

    def test_whitespace_only_token(self, project):
        config = Config(api_token="   ", project_root=project)
        with pytest.raises(ConfigurationInvalid, match="cannot be empty"):
            validate_config(config)

    def test_page_id_with_dashes_valid(self, project):
        config = Config(
            api_token="t",
            project_root=project,
            root_page_id="01234567-89ab-cdef-0123-456789abcdef",
        )
        validate_config(config)

    def test_blank_page_id_becomes_none(self, project):
        config = Config(api_token="t", project_root=project, root_page_id="  ")
        validate_config(config)
        assert config.root_page_id is None

    @pytest.mark.parametrize("page_id", ["abc", "z" * 32, VALID_PAGE_ID + "0"])
    def test_malformed_page_id(self, project, page_id):
        config = Config(api_token="t", project_root=project, root_page_id=page_id)
        with pytest.raises(ConfigurationInvalid, match="Invalid root page id"):
            validate_config(config)

    @pytest.mark.parametrize("value", [0, 101])
    def test_block_limit_out_of_range(self, project, value):
        config = Config(api_token="t", project_root=project, max_blocks_per_request=value)
        with pytest.raises(ConfigurationInvalid, match="max_blocks_per_request"):
            validate_config(config)

    def test_negative_interval(self, project):
        config = Config(api_token="t", project_root=project, request_interval=-1)
        with pytest.raises(ConfigurationInvalid, match="must not be negative"):
            validate_config(config)

    def test_missing_docs_dir_logs_warning(self, tmp_path, caplog):
        config = Config(api_token="t", project_root=tmp_path)
        with caplog.at_level(logging.WARNING, logger="docmirror.config"):
            validate_config(config)
        assert "Docs directory does not exist" in caplog.text

    def test_derived_paths(self, project):
        config = Config(api_token="t", project_root=project, state_dir=".state")
        assert config.docs_path == project / "docs"
        assert config.state_file == project / ".state" / "notion-state.json"


# -------------------------------------------------------------------------
# load_config()
# -------------------------------------------------------------------------


class TestLoadConfig:
    """Tests for load_config() -- CLI > env > YAML > default precedence."""

    def test_load_from_env_vars(self, monkeypatch, project):
        monkeypatch.setenv("NOTION_API_TOKEN", "secret_env")
        monkeypatch.setenv("NOTION_ROOT_PAGE_ID", VALID_PAGE_ID)
        config = load_config(project_root=project)
        assert config.api_token == "secret_env"
        assert config.root_page_id == VALID_PAGE_ID
        assert config.project_root == project.resolve()

    def test_cli_args_override_env(self, monkeypatch, project):
        monkeypatch.setenv("NOTION_API_TOKEN", "secret_env")
        monkeypatch.setenv("DOCMIRROR_DOCS_DIR", "env-docs")
        config = load_config(project_root=project, api_token="secret_cli", docs_dir="cli-docs")
        assert config.api_token == "secret_cli"
        assert config.docs_dir == "cli-docs"

    def test_env_overrides_yaml(self, monkeypatch, project):
        monkeypatch.setenv("NOTION_API_TOKEN", "secret_env")
        monkeypatch.setenv("DOCMIRROR_REQUEST_INTERVAL", "1.5")
        config = load_config(
            project_root=project,
            yaml_fallbacks={"api_token": "secret_yaml", "request_interval": 0.1},
        )
        assert config.api_token == "secret_env"
        assert config.request_interval == 1.5

    def test_yaml_fallbacks_used(self, project):
        config = load_config(
            project_root=project,
            yaml_fallbacks={
                "api_token": "secret_yaml",
                "root_title": "Handbook",
                "docs_dir": "docs",
                "flat_mode": True,
                "exclude": ["drafts/**"],
                "max_blocks_per_request": 50,
                "request_interval": 0.5,
                "upload_cache_ttl_minutes": 5,
            },
        )
        assert config.api_token == "secret_yaml"
        assert config.root_title == "Handbook"
        assert config.flat_mode is True
        assert config.exclude == ["drafts/**"]
        assert config.max_blocks_per_request == 50
        assert config.request_interval == 0.5
        assert config.upload_cache_ttl_minutes == 5

    def test_defaults(self, monkeypatch, project):
        monkeypatch.setenv("NOTION_API_TOKEN", "secret_env")
        config = load_config(project_root=project)
        assert config.root_page_id is None
        assert config.root_title == "Documentation"
        assert config.docs_dir == "docs"
        assert config.skip_segment == "docs"
        assert config.flat_mode is False
        assert config.request_interval == 0.334
        assert config.max_blocks_per_request == 100
        assert config.debug is False

    def test_flat_flag_wins(self, monkeypatch, project):
        monkeypatch.setenv("NOTION_API_TOKEN", "secret_env")
        config = load_config(project_root=project, flat_mode=True, debug=True)
        assert config.flat_mode is True
        assert config.debug is True

    def test_missing_token_raises(self, project):
        with pytest.raises(ConfigurationInvalid, match="NOTION_API_TOKEN"):
            load_config(project_root=project)

    def test_non_numeric_interval(self, monkeypatch, project):
        monkeypatch.setenv("NOTION_API_TOKEN", "secret_env")
        monkeypatch.setenv("DOCMIRROR_REQUEST_INTERVAL", "fast")
        with pytest.raises(ConfigurationInvalid, match="DOCMIRROR_REQUEST_INTERVAL"):
            load_config(project_root=project)

    def test_invalid_page_id_via_load(self, monkeypatch, project):
        monkeypatch.setenv("NOTION_API_TOKEN", "secret_env")
        monkeypatch.setenv("NOTION_ROOT_PAGE_ID", "not-a-page")
        with pytest.raises(ConfigurationInvalid):
            load_config(project_root=project)

    def test_project_root_defaults_to_cwd(self, monkeypatch, project):
        monkeypatch.setenv("NOTION_API_TOKEN", "secret_env")
        monkeypatch.chdir(project)
        assert load_config().project_root == project.resolve()
