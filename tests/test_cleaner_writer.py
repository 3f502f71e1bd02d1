"""Tests for annotation removal and writing files back."""
from pathlib import Path

import pytest

from usedby.analyzer.errors import FileWriteError
from usedby.annotator.annotator import AnnotationOptions, Annotator
from usedby.annotator.cleaner import remove_usage_annotations
from usedby.annotator.comment_style import C_STYLE
from usedby.annotator.writer import write_if_changed

ORIGINAL = "<?php\n/**\n * Handles payments.\n */\nclass Foo {}\n"


@pytest.fixture
def foo(symbol_factory, usage_factory):
    return symbol_factory('Foo', 'src/payments.php', 4, usages=[
        usage_factory('src/cart.php', 4),
        usage_factory('src/cart.php', 21),
    ])


class TestRemoveUsageAnnotations:

    def test_removes_annotations_and_keeps_description(self):
        content = (
            "/**\n"
            " * Foo class\n"
            " *\n"
            " * @usedby cart.php:5,22 (call)\n"
            " * @usedby app.js:3 (import)\n"
            " */\n"
            "class Foo {}\n"
        )
        cleaned, removed = remove_usage_annotations(content, C_STYLE)
        assert removed == 2
        assert cleaned == "/**\n * Foo class\n */\nclass Foo {}\n"

    def test_unannotated_content_is_untouched(self):
        cleaned, removed = remove_usage_annotations(ORIGINAL, C_STYLE)
        assert removed == 0
        assert cleaned == ORIGINAL

    def test_other_tags_survive(self):
        content = "/**\n * @param int $qty\n * @usedby a.php:1 (call)\n */\n"
        cleaned, removed = remove_usage_annotations(content, C_STYLE)
        assert removed == 1
        assert cleaned == "/**\n * @param int $qty\n */\n"

    def test_undoes_annotation(self, foo):
        annotated = Annotator().annotate_content(ORIGINAL, [foo], C_STYLE)
        assert '@usedby' in annotated

        cleaned, removed = remove_usage_annotations(annotated, C_STYLE)
        assert removed == 1
        assert cleaned == ORIGINAL

    def test_diagram_is_removed_too(self, foo):
        annotator = Annotator(AnnotationOptions(include_mermaid=True))
        annotated = annotator.annotate_content(ORIGINAL, [foo], C_STYLE)
        assert 'mermaid' in annotated

        cleaned, _ = remove_usage_annotations(annotated, C_STYLE)
        assert cleaned == ORIGINAL

    def test_crlf_is_preserved(self):
        content = "/**\r\n * Foo\r\n * @usedby a.php:1 (call)\r\n */\r\nclass Foo {}\r\n"
        cleaned, _ = remove_usage_annotations(content, C_STYLE)
        assert cleaned == "/**\r\n * Foo\r\n */\r\nclass Foo {}\r\n"

    def test_mixed_line_endings_keep_code(self):
        content = "/**\r\n * Desc\r\n * @usedby a.php:1 (call)\n */\nfunction keep_me() {}\r\n"
        cleaned, removed = remove_usage_annotations(content, C_STYLE)
        assert removed == 1
        assert cleaned == "/**\r\n * Desc\r\n */\nfunction keep_me() {}\r\n"


class TestWriteIfChanged:

    def test_unchanged_content_is_not_written(self, tmp_path):
        target = tmp_path / 'a.php'
        target.write_text(ORIGINAL, encoding='utf-8')
        before = target.stat().st_mtime_ns

        assert write_if_changed(target, ORIGINAL) is False
        assert target.stat().st_mtime_ns == before

    def test_changed_content_replaces_file(self, tmp_path):
        target = tmp_path / 'a.php'
        target.write_text(ORIGINAL, encoding='utf-8')

        assert write_if_changed(target, ORIGINAL + "// more\n") is True
        assert target.read_text(encoding='utf-8') == ORIGINAL + "// more\n"
        assert list(tmp_path.iterdir()) == [target]

    def test_line_endings_are_written_verbatim(self, tmp_path):
        target = tmp_path / 'a.php'
        target.write_bytes(b"<?php\r\n")

        write_if_changed(target, "<?php\r\nclass A {}\r\n")
        assert target.read_bytes() == b"<?php\r\nclass A {}\r\n"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileWriteError) as excinfo:
            write_if_changed(Path(tmp_path / 'gone.php'), ORIGINAL)
        assert excinfo.value.path.endswith('gone.php')
