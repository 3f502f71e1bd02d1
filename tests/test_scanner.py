"""Tests for the Scanner: registration, two-pass batches, determinism and caching."""

import pytest

from usedby.analyzer import extractor as extractor_module
from usedby.analyzer import scanner as scanner_module
from usedby.analyzer.cache import SymbolCache
from usedby.analyzer.discovery import SourceFile
from usedby.analyzer.extractor import LineIndex
from usedby.analyzer.js_extractor import BehaviorExtractor
from usedby.analyzer.models import ScanOptions
from usedby.analyzer.php_extractor import ScriptClassExtractor
from usedby.analyzer.scanner import create_default_scanner


SAMPLE_FILES = [
    'src/cart.php',
    'src/checkout.php',
    'assets/cart.js',
    'assets/app.js',
    'assets/cart.css',
    'templates/mini-cart.php',
]


@pytest.fixture
def sources(project_dir):
    return [
        SourceFile(path=relative, content=(project_dir / relative).read_text(encoding='utf-8'))
        for relative in SAMPLE_FILES
    ]


@pytest.fixture
def scanner():
    return create_default_scanner()


def deep():
    return ScanOptions(scan_depth='deep')


def by_name(symbols, name, kind=None):
    return next(s for s in symbols if s.name == name and (kind is None or s.kind == kind))


class TestRegistration:
    """Extension to extractor mapping."""

    def test_default_extensions(self, scanner):
        assert isinstance(scanner.get_parser_for_file('a/b.php'), ScriptClassExtractor)
        assert isinstance(scanner.get_parser_for_file('a/b.TSX'), BehaviorExtractor)
        assert scanner.get_parser_for_file('a/b.scss') is not None
        assert scanner.get_parser_for_file('README.md') is None

    def test_last_registration_wins(self, scanner):
        replacement = BehaviorExtractor()
        scanner.register_parser('PHP', replacement)
        assert scanner.get_parser_for_file('x.php') is replacement

    def test_unknown_extension_yields_nothing(self, scanner):
        assert scanner.scan_file('notes.txt', 'class Foo {}') == []
        assert scanner.symbols == []


class TestScanFile:
    """Definition pass for a single file."""

    def test_rescan_replaces_previous_definitions(self, scanner):
        scanner.scan_file('src/a.php', "<?php\nclass Old {}\n")
        scanner.scan_file('src/a.php', "<?php\nclass Renamed {}\n")
        assert [s.name for s in scanner.symbols] == ['Renamed']

    def test_ids_are_stable_across_rescans(self, scanner):
        content = "<?php\nclass Foo {}\nfunction bar() {}\n"
        first = [s.id for s in scanner.scan_file('src/foo.php', content)]
        second = [s.id for s in scanner.scan_file('src/foo.php', content)]
        assert first == second == ['src/foo.php#Foo#1:0', 'src/foo.php#bar#2:0']

    def test_file_needs_rescan(self, scanner):
        assert scanner.file_needs_rescan('src/a.php', 0)
        scanner.scan_file('src/a.php', "<?php\nclass A {}\n")
        assert not scanner.file_needs_rescan('src/a.php', 0)
        assert scanner.file_needs_rescan('src/a.php', 4102444800.0)

    def test_lookup_helpers(self, scanner):
        scanner.scan_file('src/a.php', "<?php\nclass Alpha {}\n")
        alpha = scanner.get_symbols_in_file('src/a.php')[0]
        assert scanner.get_symbol(alpha.id) is alpha
        assert scanner.find_symbol_at_position('src/a.php', 1, 8) is alpha
        assert scanner.find_symbol_at_position('src/a.php', 0, 0) is None

    def test_clear_cache_forgets_everything(self, scanner):
        scanner.scan_file('src/a.php', "<?php\nclass A {}\n")
        scanner.clear_cache()
        assert scanner.symbols == []
        assert scanner.file_needs_rescan('src/a.php', 0)


class TestProcessBatch:
    """Two-pass scanning of the sample project."""

    def test_empty_batch(self, scanner):
        result = scanner.process_batch([], deep())
        assert result.symbols_found == 0
        assert result.usages_found == 0
        assert result.files_scanned == 0
        assert result.symbols == []

    def test_basic_depth_skips_usages(self, scanner, sources):
        result = scanner.process_batch(sources, ScanOptions(scan_depth='basic'))
        assert result.symbols_found > 0
        assert result.usages_found == 0
        assert all(not s.usages for s in result.symbols)

    def test_deep_scan_cross_references(self, scanner, sources):
        result = scanner.process_batch(sources, deep())

        cart = by_name(result.symbols, 'Cart')
        assert [(u.file_path, u.position.line, u.kind) for u in cart.usages] == [
            ('src/checkout.php', 1, 'inclusion'),
            ('src/checkout.php', 3, 'import'),
            ('src/checkout.php', 7, 'call'),
        ]
        refresh = by_name(result.symbols, 'refreshCart')
        assert [(u.file_path, u.kind) for u in refresh.sorted_usages()] == [
            ('assets/app.js', 'call'),
            ('assets/cart.js', 'reference'),
            ('templates/mini-cart.php', 'call'),
        ]
        assert result.usages_found == sum(len(s.usages) for s in result.symbols)

    def test_no_self_citation(self, scanner, sources):
        result = scanner.process_batch(sources, deep())
        for symbol in result.symbols:
            for usage in symbol.usages:
                assert not (usage.file_path == symbol.file_path and usage.position.line == symbol.position.line)

    def test_ids_are_unique(self, scanner, sources):
        result = scanner.process_batch(sources, deep())
        ids = [s.id for s in result.symbols]
        assert len(ids) == len(set(ids))

    def test_batch_order_does_not_change_result(self, sources):
        forward = create_default_scanner().process_batch(sources, deep())
        backward = create_default_scanner().process_batch(list(reversed(sources)), deep())
        assert [s.to_dict() for s in forward.symbols] == [s.to_dict() for s in backward.symbols]

    def test_usages_are_recomputed_not_accumulated(self, scanner, sources):
        first = scanner.process_batch(sources, deep())
        counts = {s.id: len(s.usages) for s in first.symbols}
        second = scanner.process_batch(sources, deep())
        assert {s.id: len(s.usages) for s in second.symbols} == counts

    def test_one_line_index_per_file_and_pass(self, scanner, sources, monkeypatch):
        built = []

        class CountingIndex(LineIndex):
            def __init__(self, content):
                built.append(content)
                super().__init__(content)

        monkeypatch.setattr(scanner_module, 'LineIndex', CountingIndex)
        monkeypatch.setattr(extractor_module, 'LineIndex', CountingIndex)
        scanner.process_batch(sources, deep())

        # One for the definition pass, one shared by every symbol in the usage pass
        assert len(built) == 2 * len(sources)

    def test_shared_index_gives_same_usages(self, scanner, sources):
        scanner.process_batch(sources, ScanOptions(scan_depth='basic'))
        checkout = next(s for s in sources if s.path == 'src/checkout.php')
        cart = by_name(scanner.symbols, 'Cart')

        shared = scanner.find_usages_in_file(cart, checkout.path, checkout.content, LineIndex(checkout.content))
        assert shared == scanner.find_usages_in_file(cart, checkout.path, checkout.content)
        assert [u.position.line for u in shared] == [1, 3, 7]

    def test_rescanning_a_file_drops_its_stale_usages(self, scanner, sources):
        scanner.process_batch(sources, deep())
        scanner.scan_file('assets/app.js', '')
        refresh = by_name(scanner.symbols, 'refreshCart')
        assert 'assets/app.js' not in {u.file_path for u in refresh.usages}


class TestCachedScanning:
    """Definitions served from the on-disk cache."""

    def test_cache_hit_returns_same_symbols(self, tmp_path, sources):
        with SymbolCache(tmp_path) as cache:
            cold = create_default_scanner(cache).process_batch(sources, deep())
            warm = create_default_scanner(cache).process_batch(sources, deep())
            assert cache.get_cache_stats()['total_files'] == len(sources)

        assert [s.to_dict() for s in warm.symbols] == [s.to_dict() for s in cold.symbols]

    def test_cache_can_be_bypassed(self, tmp_path, sources):
        with SymbolCache(tmp_path) as cache:
            options = ScanOptions(scan_depth='deep', cache_results=False)
            create_default_scanner(cache).process_batch(sources, options)
            assert cache.get_cache_stats()['total_files'] == 0
