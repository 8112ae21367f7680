# tests/test_cli.py

import pytest
from keybox_core import cli
from keybox_core.models import Secret


@pytest.fixture
def vault_env(monkeypatch, tmp_path):
    monkeypatch.setenv("KEYBOX_STORAGE_PROVIDER", "sqlite")
    monkeypatch.setenv("KEYBOX_DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setenv("KEYBOX_SYNC_TRANSPORT", "local")
    monkeypatch.setenv("KEYBOX_BIOMETRICS", "1")
    return tmp_path


def test_hotp_command(capsys):
    assert cli.main(["hotp", "--secret", "JBSWY3DPEHPK3PXP", "--counter", "0"]) == 0
    assert "282760" in capsys.readouterr().out

    assert cli.main(["hotp", "--secret", "0000", "--counter", "0"]) == 1


def test_hotp_command_rejects_out_of_range_counter(capsys):
    assert cli.main(["hotp", "--secret", "JBSWY3DPEHPK3PXP", "--counter", str(2 ** 64)]) == 1
    assert "counter must be between 0 and" in capsys.readouterr().out
    assert cli.main(["hotp", "--secret", "JBSWY3DPEHPK3PXP", "--counter", "0", "--digits", "12"]) == 1


def test_token_lifecycle(vault_env, monkeypatch, capsys):
    monkeypatch.setattr("builtins.input", lambda prompt="": "y")
    assert cli.main(["add-token", "--issuer", "GitHub", "--account", "alice",
                     "--secret", "JBSWY3DPEHPK3PXP"]) == 0
    assert "Added GitHub (alice)" in capsys.readouterr().out

    assert cli.main(["add-uri", "otpauth://totp/bob?secret=GEZDGNBVGY3TQOJQ&issuer=Google"]) == 0
    assert cli.main(["add-uri", "https://nope"]) == 1
    assert "must start with otpauth://" in capsys.readouterr().out

    assert cli.main(["codes", "--search", "git"]) == 0
    lines = [l for l in capsys.readouterr().out.splitlines() if "GitHub" in l]
    assert len(lines) == 1
    token_id = lines[0].split()[-1]

    assert cli.main(["delete-token", token_id]) == 0
    assert "Moved to trash" in capsys.readouterr().out
    assert cli.main(["delete-token", token_id]) == 1

    assert cli.main(["trash"]) == 0
    trash_line = [l for l in capsys.readouterr().out.splitlines() if "GitHub" in l][0]
    assert cli.main(["restore", trash_line.split()[0]]) == 0


def test_account_and_password_reveal(vault_env, monkeypatch, capsys):
    assert cli.main(["add-account", "--title", "Bank", "--account", "alice",
                     "--password", "s3cret", "--category", "Website"]) == 0
    capsys.readouterr()

    assert cli.main(["accounts", "--category", "Website"]) == 0
    line = [l for l in capsys.readouterr().out.splitlines() if "Bank" in l][0]
    account_id = line.split()[0]

    monkeypatch.setattr("builtins.input", lambda prompt="": "n")
    assert cli.main(["show-password", account_id]) == 1

    monkeypatch.setattr("builtins.input", lambda prompt="": "y")
    assert cli.main(["show-password", account_id]) == 0
    assert "s3cret" in capsys.readouterr().out

    assert cli.main(["activity", "--limit", "5"]) == 0
    out = capsys.readouterr().out
    assert "Viewed Password" in out and "Added Account" in out


def test_sync_and_generate(vault_env, monkeypatch, capsys):
    monkeypatch.setattr("builtins.input", lambda prompt="": "yes")
    assert cli.main(["sync", "enable"]) == 0
    assert "enabled=True" in capsys.readouterr().out

    assert cli.main(["generate", "password", "--length", "24", "--symbols"]) == 0
    password = capsys.readouterr().out.strip().splitlines()[-1]
    assert len(password) == 24

    assert cli.main(["generate", "secret", "--issuer", "Keybox", "--account", "me"]) == 0
    out = capsys.readouterr().out
    assert "otpauth://totp/Keybox:me?secret=" in out


def test_add_token_rejects_bad_digits_and_codes_survive_stored_one(vault_env, capsys):
    assert cli.main(["add-token", "--issuer", "Long", "--account", "x",
                     "--secret", "JBSWY3DPEHPK3PXP", "--digits", "12"]) == 1
    assert "out of range" in capsys.readouterr().out

    kb = cli.open_vault(cli.build_parser().parse_args(["codes"]))
    kb.tokens.add(Secret(issuer="Frozen", account_name="x", secret="JBSWY3DPEHPK3PXP", period=0))
    kb.storage.close()

    assert cli.main(["codes"]) == 0
    line = [l for l in capsys.readouterr().out.splitlines() if "Frozen" in l][0]
    assert line.startswith("000000   0s")
