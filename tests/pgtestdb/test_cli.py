from click.testing import CliRunner

from pgtestdb.cli import classify, cli
from pgtestdb.fingerprint import template_name


FINGERPRINT = "0123456789abcdef0123456789abcdef"


def test_classify_separates_templates_and_clones():
    names = [
        f"app_{FINGERPRINT}",
        f"app_{FINGERPRINT}_12345",
        f"app_{FINGERPRINT}_99",
        "app_unrelated",
        f"application_{FINGERPRINT}",
    ]
    templates, clones = classify("app", names)
    assert templates == [f"app_{FINGERPRINT}"]
    assert clones == [f"app_{FINGERPRINT}_12345", f"app_{FINGERPRINT}_99"]


def test_fingerprint_prints_template_name(tmp_path):
    schema = tmp_path / "schema.sql"
    schema.write_bytes(b"CREATE TABLE table1 (id integer);\n")

    result = CliRunner().invoke(cli, ["fingerprint", str(schema), "--base-name", "app"])

    assert result.exit_code == 0, result.output
    assert result.output.strip() == template_name("app", schema.read_bytes())


def test_fingerprint_rejects_bad_base_name(tmp_path):
    schema = tmp_path / "schema.sql"
    schema.write_text("SELECT 1;")

    result = CliRunner().invoke(cli, ["fingerprint", str(schema), "--base-name", "Bad-Name"])

    assert result.exit_code != 0
    assert "lowercase" in result.output


def test_templates_list_requires_target():
    result = CliRunner().invoke(cli, ["templates", "list", "--base-name", "app"])
    assert result.exit_code != 0
    assert "No database target" in result.output
