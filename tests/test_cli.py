from click.testing import CliRunner

import defenderpin.cli as cli_module

ENV = {
    "PRISMA_API_URL": "https://api.example.com/us-2-123",
    "PRISMA_TOKEN": "secret-token-value",
    "PRISMA_CONSOLE": "console.example.com",
}


class FakeInstaller:
    captured = {}

    def __init__(self, **kwargs):
        FakeInstaller.captured = kwargs

    def run(self):
        return 0


def test_cli_forwards_unknown_args_in_order(monkeypatch):
    monkeypatch.setattr(cli_module, "DefenderInstaller", FakeInstaller)

    runner = CliRunner()
    result = runner.invoke(
        cli_module.main,
        ["-v", "--tag", "defender_34_01_132", "--image", "d.tar.gz", "-m", "--ws-port", "8443", "--install-host"],
        env=ENV,
    )

    assert result.exit_code == 0, result.output
    request = FakeInstaller.captured["request"]
    assert request.passthrough_args == ("-v", "-m", "--ws-port", "8443", "--install-host")
    assert request.version_tag == "_34_01_132"
    assert request.console_address == "console.example.com"


def test_cli_uses_config_and_allows_cli_override(tmp_path, monkeypatch):
    config_file = tmp_path / "custom.yml"
    config_file.write_text(
        "tag: _1_0_0\n" "registry: registry.example.com\n" "cpu_limit: '0-3'\n" "fetch_timeout: 45\n",
        encoding="utf-8",
    )
    monkeypatch.setattr(cli_module, "DefenderInstaller", FakeInstaller)

    runner = CliRunner()
    result = runner.invoke(
        cli_module.main,
        ["--config", str(config_file), "--cpu-limit", "1", "--keep-files"],
        env=ENV,
    )

    assert result.exit_code == 0, result.output
    request = FakeInstaller.captured["request"]
    assert request.version_tag == "_1_0_0"
    assert request.cpu_set == "1"
    assert request.keep_work_files is True
    assert FakeInstaller.captured["fetch_timeout"] == 45.0


def test_cli_uses_default_config_file_when_present(tmp_path, monkeypatch):
    (tmp_path / ".defenderpin.yml").write_text("memory_limit: 2g\ndry_run: true\n", encoding="utf-8")
    monkeypatch.setattr(cli_module, "DefenderInstaller", FakeInstaller)
    monkeypatch.chdir(tmp_path)

    runner = CliRunner()
    result = runner.invoke(cli_module.main, [], env=ENV)

    assert result.exit_code == 0, result.output
    request = FakeInstaller.captured["request"]
    assert request.memory_limit == "2g"
    assert request.dry_run is True


def test_cli_reports_missing_environment_variable(monkeypatch):
    monkeypatch.setattr(cli_module, "DefenderInstaller", FakeInstaller)
    FakeInstaller.captured = {}

    env = dict(ENV, PRISMA_TOKEN="")
    runner = CliRunner()
    result = runner.invoke(cli_module.main, ["-v"], env=env)

    assert result.exit_code == 1
    assert "PRISMA_TOKEN" in result.output
    assert "PRISMA_API_URL" not in result.output.split("Suggested action")[0]
    assert FakeInstaller.captured == {}


def test_cli_rejects_tag_without_source(monkeypatch):
    monkeypatch.setattr(cli_module, "DefenderInstaller", FakeInstaller)
    FakeInstaller.captured = {}

    runner = CliRunner()
    result = runner.invoke(cli_module.main, ["--tag", "_9_9_9"], env=ENV)

    assert result.exit_code == 1
    assert "--tag requires" in result.output
    assert FakeInstaller.captured == {}


def test_cli_help_exits_zero():
    runner = CliRunner()
    result = runner.invoke(cli_module.main, ["--help"])

    assert result.exit_code == 0
    assert "PRISMA_API_URL" in result.output
    assert "--source-image" in result.output
