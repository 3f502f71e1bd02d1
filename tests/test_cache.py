"""Tests for the SQLite definition cache."""
import pytest

from usedby.analyzer.cache import SymbolCache, content_digest


@pytest.fixture
def cache(tmp_path):
    cache = SymbolCache(tmp_path)
    yield cache
    cache.close()


@pytest.fixture
def symbols(symbol_factory, usage_factory):
    return [
        symbol_factory('Cart', 'src/cart.php', 6, usages=[usage_factory('src/checkout.php', 7)]),
        symbol_factory('total', 'src/cart.php', 16, 'method', character=4),
    ]


CONTENT = "<?php\nclass Cart {}\n"


def test_cache_directory_is_created(tmp_path):
    with SymbolCache(tmp_path, '.custom_cache') as cache:
        assert cache.cache_file.exists()
    assert (tmp_path / '.custom_cache' / 'symbols.db').exists()


def test_hit_returns_definitions_without_usages(cache, symbols):
    cache.set_symbols('src/cart.php', CONTENT, symbols)
    cached = cache.get_symbols('src/cart.php', CONTENT)

    assert [s.name for s in cached] == ['Cart', 'total']
    assert all(not s.usages for s in cached)
    assert cached[1].position == symbols[1].position


def test_changed_content_misses(cache, symbols):
    cache.set_symbols('src/cart.php', CONTENT, symbols)
    assert cache.get_symbols('src/cart.php', CONTENT + "// edit\n") is None
    assert cache.get_symbols('src/other.php', CONTENT) is None


def test_invalidate_and_clear(cache, symbols):
    cache.set_symbols('src/cart.php', CONTENT, symbols)
    cache.set_symbols('src/checkout.php', "<?php\n", [])

    cache.invalidate_file('src/cart.php')
    assert cache.get_symbols('src/cart.php', CONTENT) is None
    assert cache.get_cache_stats() == {'total_files': 1, 'symbols_cached': 0}

    cache.clear_cache()
    assert cache.get_cache_stats()['total_files'] == 0


def test_stats_count_symbols(cache, symbols):
    cache.set_symbols('src/cart.php', CONTENT, symbols)
    assert cache.get_cache_stats() == {'total_files': 1, 'symbols_cached': 2}


def test_corrupt_entry_is_discarded(cache):
    cache.conn.execute(
        'INSERT INTO symbol_definitions (file_path, digest, symbol_data, timestamp) VALUES (?, ?, ?, ?)',
        ('src/cart.php', content_digest(CONTENT), '[{"name": "Cart"}]', 0.0),
    )
    cache.conn.commit()

    assert cache.get_symbols('src/cart.php', CONTENT) is None
    assert cache.get_cache_stats()['total_files'] == 0
