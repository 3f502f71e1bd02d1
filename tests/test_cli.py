"""End-to-end tests for the usedby command line."""
import json

import pytest
from typer.testing import CliRunner

from usedby.analyzer.models import load_scan_result
from usedby.config import __version__
from usedby.main import app

runner = CliRunner()

SOURCE_FILES = [
    'src/cart.php',
    'src/checkout.php',
    'assets/cart.js',
    'assets/app.js',
    'assets/cart.css',
    'templates/mini-cart.php',
]


def snapshot(root):
    return {name: (root / name).read_text(encoding='utf-8') for name in SOURCE_FILES}


@pytest.fixture
def scan_file(project_dir, tmp_path):
    """Deep scan of the sample project saved as JSON."""
    output = tmp_path / 'scan.json'
    result = runner.invoke(app, ['scan', str(project_dir), '-o', str(output), '-d', 'deep'])
    assert result.exit_code == 0, result.output
    return output


class TestScan:

    def test_writes_scan_result(self, scan_file):
        result = load_scan_result(scan_file)
        cart = next(s for s in result.symbols if s.name == 'Cart')

        assert cart.file_path == 'src/cart.php'
        assert [(u.file_path, u.kind) for u in cart.usages] == [
            ('src/checkout.php', 'inclusion'),
            ('src/checkout.php', 'import'),
            ('src/checkout.php', 'call'),
        ]
        assert all(not s.file_path.startswith('vendor/') for s in result.symbols)

    def test_prints_summary(self, project_dir):
        result = runner.invoke(app, ['scan', str(project_dir), '--no-cache'])
        assert result.exit_code == 0
        assert 'Files Scanned' in result.output
        assert not (project_dir / '.usedby_cache').exists()

    def test_missing_path_fails(self, tmp_path):
        result = runner.invoke(app, ['scan', str(tmp_path / 'missing')])
        assert result.exit_code == 1
        assert 'does not exist' in result.output

    def test_unknown_depth_fails(self, project_dir):
        result = runner.invoke(app, ['scan', str(project_dir), '-d', 'shallow'])
        assert result.exit_code == 1


class TestAnnotate:

    def test_writes_doc_blocks(self, project_dir):
        result = runner.invoke(app, ['annotate', str(project_dir), '--force'])
        assert result.exit_code == 0, result.output

        cart = (project_dir / 'src' / 'cart.php').read_text(encoding='utf-8')
        assert (
            "/**\n"
            " * Shopping cart.\n"
            " *\n"
            " * @usedby checkout.php:2,4,8 (inclusion)\n"
            " */\n"
            "class Cart\n"
        ) in cart
        assert '@usedby checkout.php:9 (call)' in cart

        widget = (project_dir / 'assets' / 'cart.js').read_text(encoding='utf-8')
        assert '@usedby app.js:1,3 (import)' in widget
        assert '@usedby ../templates/mini-cart.php:2 (call)' in widget

        vendor = (project_dir / 'vendor' / 'lib' / 'Cart.php').read_text(encoding='utf-8')
        assert '@usedby' not in vendor

    def test_repeated_runs_settle(self, project_dir):
        for _ in range(2):
            runner.invoke(app, ['annotate', str(project_dir), '--force'])
        settled = snapshot(project_dir)

        result = runner.invoke(app, ['annotate', str(project_dir), '--force'])
        assert result.exit_code == 0
        assert snapshot(project_dir) == settled

    def test_from_saved_scan(self, project_dir, scan_file):
        result = runner.invoke(app, ['annotate', str(project_dir), '--input', str(scan_file), '--force'])
        assert result.exit_code == 0
        assert '@usedby checkout.php:2,4,8 (inclusion)' in (project_dir / 'src' / 'cart.php').read_text()

    def test_mermaid_diagrams(self, project_dir):
        result = runner.invoke(app, ['annotate', str(project_dir), '--force', '--mermaid'])
        assert result.exit_code == 0
        assert ' * ```mermaid\n * flowchart TD\n' in (project_dir / 'src' / 'cart.php').read_text()

    def test_declining_confirmation_changes_nothing(self, project_dir):
        before = snapshot(project_dir)
        result = runner.invoke(app, ['annotate', str(project_dir)], input='n\n')

        assert result.exit_code == 0
        assert 'Aborted' in result.output
        assert snapshot(project_dir) == before

    def test_bad_input_file_fails(self, project_dir, tmp_path):
        bad = tmp_path / 'bad.json'
        bad.write_text('[1, 2', encoding='utf-8')
        result = runner.invoke(app, ['annotate', str(project_dir), '--input', str(bad), '--force'])
        assert result.exit_code == 1


class TestClean:

    def test_removes_what_annotate_added(self, project_dir):
        runner.invoke(app, ['annotate', str(project_dir), '--force', '--mermaid'])
        result = runner.invoke(app, ['clean', str(project_dir)])

        assert result.exit_code == 0, result.output
        for content in snapshot(project_dir).values():
            assert '@usedby' not in content
            assert 'mermaid' not in content
        assert (project_dir / 'src' / 'cart.php').read_text().startswith(
            "<?php\nnamespace Shop;\n\n/**\n * Shopping cart.\n */\nclass Cart\n"
        )


class TestVisualize:

    def test_mermaid_to_stdout(self, scan_file):
        result = runner.invoke(app, ['visualize', '--input', str(scan_file), '-d', 'LR'])
        assert result.exit_code == 0, result.output
        assert 'graph LR' in result.output
        assert 'file_src_checkout_php>"checkout.php"]' in result.output

    def test_single_symbol(self, scan_file):
        result = runner.invoke(app, ['visualize', '--input', str(scan_file), '-s', 'Cart'])
        assert result.exit_code == 0
        assert 'Used 3 times' in result.output

    def test_unknown_symbol_suggests_names(self, scan_file):
        result = runner.invoke(app, ['visualize', '--input', str(scan_file), '-s', 'cart'])
        assert result.exit_code == 1
        assert 'Symbol not found' in result.output
        assert 'Did you mean' in result.output

    def test_json_to_file(self, scan_file, tmp_path):
        output = tmp_path / 'graph.json'
        result = runner.invoke(app, ['visualize', '--input', str(scan_file), '--format', 'json',
                                     '-o', str(output), '--no-include-files'])
        assert result.exit_code == 0

        data = json.loads(output.read_text(encoding='utf-8'))
        assert data['edges'] == []
        assert {node['type'] for node in data['nodes']} <= {'class', 'function', 'method', 'selector',
                                                            'variable', 'event'}

    def test_target_types(self, scan_file, tmp_path):
        output = tmp_path / 'graph.json'
        runner.invoke(app, ['visualize', '--input', str(scan_file), '--format', 'json',
                            '-o', str(output), '--target-types', 'selector'])

        data = json.loads(output.read_text(encoding='utf-8'))
        assert {node['type'] for node in data['nodes']} <= {'selector', 'file'}

    def test_missing_input_fails(self, tmp_path):
        result = runner.invoke(app, ['visualize', '--input', str(tmp_path / 'nope.json')])
        assert result.exit_code == 1

    def test_unknown_direction_fails(self, scan_file):
        result = runner.invoke(app, ['visualize', '--input', str(scan_file), '-d', 'UP'])
        assert result.exit_code == 1


class TestCacheCommands:

    def test_stats_and_clear(self, project_dir, scan_file):
        stats = runner.invoke(app, ['cache', 'stats', str(project_dir)])
        assert stats.exit_code == 0
        assert 'Total Files Cached' in stats.output

        cleared = runner.invoke(app, ['cache', 'clear', str(project_dir)])
        assert cleared.exit_code == 0
        assert 'Cache cleared' in cleared.output


def test_version():
    result = runner.invoke(app, ['--version'])
    assert result.exit_code == 0
    assert __version__ in result.output
