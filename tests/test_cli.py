"""
CLI 与配置测试
"""
import json
import pytest
import yaml
from click.testing import CliRunner

from node_runtime.cli import cli, parse_secrets
from node_runtime.config import Settings


EMAIL_PROPERTIES = {
    "toEmail": "ada@example.com",
    "fromEmail": "bot@example.com",
    "subject": "Hi",
    "body": "Hello"
}


class TestCLI:
    """命令行测试类"""

    @pytest.fixture
    def runner(self):
        return CliRunner()

    def test_nodes(self, runner):
        """测试列出节点"""
        result = runner.invoke(cli, ["nodes"])

        assert result.exit_code == 0
        assert "http-request" in result.output
        assert "resend-send-email" in result.output

    def test_describe(self, runner):
        """测试输出节点定义"""
        result = runner.invoke(cli, ["describe", "code"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["name"] == "code"

    def test_describe_unknown(self, runner):
        """测试未知节点"""
        result = runner.invoke(cli, ["describe", "teleport"])

        assert result.exit_code != 0
        assert "Node not found: teleport" in result.output

    def test_generate_key(self, runner):
        """测试生成主密钥"""
        result = runner.invoke(cli, ["generate-key"])

        assert result.exit_code == 0
        assert len(result.output.strip()) == 64

    def test_run_with_yaml_props_and_secret(self, runner, tmp_path):
        """测试使用 YAML 属性文件和命令行密钥运行"""
        props = tmp_path / "email.yaml"
        props.write_text(yaml.safe_dump(EMAIL_PROPERTIES))

        result = runner.invoke(cli, [
            "run", "resend-send-email",
            "--props", str(props),
            "--secret", "apiKey=re_cli",
            "--mock-email"
        ])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["status"] == "success"
        assert data["output"]["success"] is True

    def test_run_missing_secret_fails(self, runner, tmp_path):
        """测试缺失密钥时以非零状态退出"""
        props = tmp_path / "email.json"
        props.write_text(json.dumps(EMAIL_PROPERTIES))

        result = runner.invoke(cli, ["run", "resend-send-email", "--props", str(props), "--mock-email"])

        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"]["code"] == "missing_secret"

    def test_parse_secrets(self):
        """测试解析 slot=value"""
        assert parse_secrets(["apiKey=a=b"]) == {"apiKey": "a=b"}


class TestSettings:
    """配置测试类"""

    def test_from_env(self, monkeypatch):
        """测试从环境变量读取"""
        monkeypatch.setenv("NODE_RUNTIME_HTTP_TIMEOUT_MS", "5000")
        monkeypatch.setenv("NODE_RUNTIME_SANDBOX_TIMEOUT", "2.5")
        monkeypatch.setenv("API_RELOAD", "TRUE")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = Settings.from_env(dotenv=False)

        assert settings.http_timeout_ms == 5000
        assert settings.sandbox_timeout == 2.5
        assert settings.api_reload is True
        assert settings.log_level == "DEBUG"

    def test_defaults(self, monkeypatch):
        """测试默认值"""
        for name in ["NODE_RUNTIME_HTTP_TIMEOUT_MS", "SECRETS_MASTER_KEY", "API_PORT"]:
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env(dotenv=False)

        assert settings.http_timeout_ms == 30000
        assert settings.secrets_master_key is None
        assert settings.api_port == 8000
