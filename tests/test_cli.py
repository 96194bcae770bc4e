import sys
from pathlib import Path
from unittest.mock import patch

import pytest

# Add project root to sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from mdreader import cli
from mdreader.version_info import __version__


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ('MDREADER_PORT', 'MDREADER_HOST', 'MDREADER_DEBUG'):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


def test_version(capsys):
    assert cli.main(['--version']) == 0
    assert f"mdreader v{__version__}" in capsys.readouterr().out


def test_render_to_stdout(tmp_path, capsys):
    doc = tmp_path / 'notes.md'
    doc.write_text("# Notes\n\n<script>x()</script>Hello", encoding='utf-8')
    assert cli.main([str(doc), '--render']) == 0
    out = capsys.readouterr().out
    assert 'id="notes"' in out
    assert '<script' not in out


def test_render_loads_math(tmp_path, capsys):
    doc = tmp_path / 'math.md'
    doc.write_text("# Area\n\nIt is $\\pi r^2$.", encoding='utf-8')
    assert cli.main([str(doc), '--render']) == 0
    out = capsys.readouterr().out
    assert '<math' in out
    assert '$' not in out


def test_render_failed_math_stays_literal(tmp_path, capsys):
    doc = tmp_path / 'math.md'
    doc.write_text("It is $x^2$.", encoding='utf-8')
    with patch('mdreader.features.registry.load_math', side_effect=ImportError("no latex2mathml")):
        assert cli.main([str(doc), '--render']) == 0
    out = capsys.readouterr().out
    assert '<math' not in out
    assert '$x^2$' in out


def test_render_missing_file(tmp_path, capsys):
    assert cli.main([str(tmp_path / 'missing.md'), '--render']) == 1
    assert 'Error' in capsys.readouterr().err


def test_file_required():
    with pytest.raises(SystemExit):
        cli.main([])


def test_bad_config_file(tmp_path, capsys):
    (tmp_path / 'mdreader.json').write_text('{"port": "not a port"}', encoding='utf-8')
    doc = tmp_path / 'a.md'
    doc.write_text("a", encoding='utf-8')
    assert cli.main([str(doc)]) == 1
    assert 'Configuration error' in capsys.readouterr().err


def test_server_start_uses_overrides(tmp_path):
    doc = tmp_path / 'a.md'
    doc.write_text("# A", encoding='utf-8')
    with patch('mdreader.app.app.run') as run, patch('mdreader.core.logging_config.setup_logging') as setup:
        assert cli.main([str(doc), '--port', '9123', '--host', '0.0.0.0']) == 0
    setup.assert_called_once_with(Path('logs'), False)
    run.assert_called_once()
    assert run.call_args.kwargs['port'] == 9123
    assert run.call_args.kwargs['host'] == '0.0.0.0'


def test_server_start_missing_file(tmp_path, capsys):
    with patch('mdreader.app.app.run') as run, patch('mdreader.core.logging_config.setup_logging'):
        assert cli.main([str(tmp_path / 'missing.md')]) == 1
    run.assert_not_called()
