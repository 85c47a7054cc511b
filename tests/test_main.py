"""Tests for the puppetchef command line."""

import pytest
import os
import sys
from unittest.mock import AsyncMock, MagicMock, patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from click.testing import CliRunner

from main import cli


RECIPE_YAML = """\
url: https://example.com
name: Login
tasks:
  - name: Submit
    steps:
      - puppetchef.builtin.common:
          command: click
          selector: '#submit'
"""


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run in an empty directory so no default config is picked up."""
    monkeypatch.chdir(tmp_path)
    for name in ("PUPPETCHEF_LOGLEVEL", "PUPPETCHEF_INFO", "PUPPETCHEF_DEBUG", "PUPPETCHEF_LOGFILE"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


class TestCli:
    """Test exit codes and syntax checking."""

    def test_syntax_check(self, workdir):
        """A valid recipe passes the syntax check without a browser."""
        (workdir / "recipe.yaml").write_text(RECIPE_YAML)

        with patch("main.BrowserManager") as manager:
            result = CliRunner().invoke(cli, ["recipe.yaml", "--syntax-check"])

        assert result.exit_code == 0
        assert "syntax ok" in result.output
        manager.assert_not_called()

    def test_invalid_recipe(self, workdir):
        """Schema errors exit 255."""
        (workdir / "recipe.yaml").write_text("name: Login\ntasks: []\n")

        result = CliRunner().invoke(cli, ["recipe.yaml", "--syntax-check"])

        assert result.exit_code == 255
        assert "'url' is a required property" in result.output

    def test_unknown_plugin(self, workdir):
        """Unloadable plugin namespaces exit 255."""
        (workdir / "recipe.yaml").write_text(
            RECIPE_YAML.replace("puppetchef.builtin.common", "puppetchef_missing_plugin")
        )

        result = CliRunner().invoke(cli, ["recipe.yaml", "--syntax-check"])

        assert result.exit_code == 255
        assert "Cannot load plugin" in result.output

    def test_missing_recipe_file(self, workdir):
        result = CliRunner().invoke(cli, ["nope.yaml"])

        assert result.exit_code == 1
        assert "Error reading or parsing recipe file" in result.output

    def test_unparseable_recipe_file(self, workdir):
        (workdir / "recipe.yaml").write_text("tasks: [unclosed\n")

        result = CliRunner().invoke(cli, ["recipe.yaml"])

        assert result.exit_code == 1

    def test_undecodable_recipe_file(self, workdir):
        """Non UTF-8 input is reported, not a traceback."""
        (workdir / "recipe.yaml").write_bytes(b"name: \xff\xfe\n")

        result = CliRunner().invoke(cli, ["recipe.yaml"])

        assert result.exit_code == 1
        assert "Error reading or parsing recipe file" in result.output

    def test_missing_explicit_config(self, workdir):
        """An explicit --conf that does not exist exits 1."""
        (workdir / "recipe.yaml").write_text(RECIPE_YAML)

        result = CliRunner().invoke(cli, ["recipe.yaml", "-c", "missing.json"])

        assert result.exit_code == 1
        assert "Error reading or parsing config file" in result.output

    @pytest.mark.parametrize("retcode", [0, 255])
    def test_run_exit_code(self, workdir, retcode):
        """The process exits with the runner's result code."""
        (workdir / "recipe.yaml").write_text(RECIPE_YAML)
        (workdir / "puppetchefrc").write_text('{"browser": {"headless": true}}')

        runner = MagicMock()
        runner.run = AsyncMock(return_value=retcode)

        with patch("main.BrowserManager") as manager, \
                patch("main.RecipeRunner", return_value=runner) as runner_cls:
            result = CliRunner().invoke(cli, ["recipe.yaml"])

        assert result.exit_code == retcode
        manager.assert_called_once()
        assert manager.call_args.args[0].headless is True
        runner_cls.assert_called_once()
        recipe = runner.run.await_args.args[0]
        assert recipe.name == "Login"

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "puppetchef" in result.output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
