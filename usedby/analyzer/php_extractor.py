"""Server-side script extractor: classes, functions and methods in PHP."""
import re
from pathlib import PurePath
from typing import Iterable, Iterator, Optional

from .css_extractor import custom_property_patterns, iter_matches, markup_selector_patterns
from .extractor import SCRIPT_EXTENSIONS, LanguageExtractor, LineIndex, language_for_path
from .models import Symbol, Usage

CLASS_PATTERN = re.compile(
    r'\b(?:(?:abstract|final)\s+)?(?:class|interface|trait)\s+([A-Za-z0-9_]+)'
    r'(?:\s+extends\s+([A-Za-z0-9_\\, ]+?))?'
    r'(?:\s+implements\s+([A-Za-z0-9_\\, ]+?))?\s*\{'
)
METHOD_PATTERN = re.compile(
    r'(?:(?:public|protected|private|static|abstract|final)\s+)*function\s+&?([A-Za-z0-9_]+)\s*\('
)
FUNCTION_PATTERN = re.compile(r'\bfunction\s+&?([A-Za-z0-9_]+)\s*\(')
NAMESPACE_PATTERN = re.compile(r'\bnamespace\s+([A-Za-z0-9_\\]+)\s*[;{]')

# Functions that take a callable by name: add_action('init', 'my_callback')
HOOK_FUNCTIONS = (
    'add_action', 'add_filter', 'remove_action', 'remove_filter', 'has_action', 'has_filter',
    'add_shortcode', 'register_activation_hook', 'register_deactivation_hook',
    'register_uninstall_hook', 'spl_autoload_register', 'call_user_func',
    'call_user_func_array', 'function_exists', 'is_callable', 'usort', 'uasort',
    'uksort', 'array_map', 'array_filter', 'array_walk',
)
HOOK_CALL = re.compile(r'\b(?:' + '|'.join(HOOK_FUNCTIONS) + r')\s*\(')
INCLUDE_STATEMENT = re.compile(r'\b(?:require|include)(?:_once)?\b[^;\n]*')


class ScriptClassExtractor(LanguageExtractor):
    """Extract and cross-reference PHP classes, functions and methods."""

    LANGUAGE = 'script'
    EXTENSIONS = SCRIPT_EXTENSIONS

    def _extract_symbols(self, content: str, file_path: str, index: LineIndex) -> Iterable[Symbol]:
        namespaces = [(m.start(), m.group(1)) for m in NAMESPACE_PATTERN.finditer(content)]

        classes = list(CLASS_PATTERN.finditer(content))
        spans = self.block_spans(content, ((m.group(1), m.start()) for m in classes))

        for match, span in zip(classes, spans):
            name = match.group(1)
            yield self.make_symbol(index, file_path, name, 'class', match.start(), match.end(),
                                   container=self._namespace_at(namespaces, match.start()))

            _, body_start, body_end, closed = span
            if closed:
                yield from self._extract_methods(content, file_path, index, name, body_start, body_end)

        for match in FUNCTION_PATTERN.finditer(content):
            if self.enclosing_span(spans, match.start()):
                continue
            yield self.make_symbol(index, file_path, match.group(1), 'function', match.start(), match.end(),
                                   container=self._namespace_at(namespaces, match.start()))

    def _extract_methods(self, content: str, file_path: str, index: LineIndex,
                         class_name: str, body_start: int, body_end: int) -> Iterator[Symbol]:
        depth = 0
        cursor = body_start
        for match in METHOD_PATTERN.finditer(content, body_start, body_end):
            depth += content.count('{', cursor, match.start()) - content.count('}', cursor, match.start())
            cursor = match.start()
            # Only direct members; named functions inside method bodies are skipped
            if depth != 0:
                continue
            start = match.start() + len(match.group()) - len(match.group().lstrip())
            yield self.make_symbol(index, file_path, match.group(1), 'method', start, match.end(),
                                   container=class_name)

    @staticmethod
    def _namespace_at(namespaces, offset: int) -> Optional[str]:
        current = None
        for start, name in namespaces:
            if start >= offset:
                break
            current = name
        return current

    # --- usages ----------------------------------------------------------

    def _collect_usages(self, content: str, file_path: str, symbol: Symbol,
                        index: LineIndex) -> Iterable[Usage]:
        language = language_for_path(symbol.file_path)

        if language == 'script':
            if symbol.kind == 'class':
                yield from self._class_usages(content, file_path, symbol, index)
            elif symbol.kind == 'function':
                yield from self._function_usages(content, file_path, symbol, index)
            elif symbol.kind == 'method':
                yield from self._method_usages(content, file_path, symbol, index)
            if symbol.kind in ('class', 'function'):
                yield from self._inclusion_usages(content, file_path, symbol, index)

        elif language == 'behavior' and symbol.kind == 'function':
            # Inline handlers in templates: onclick="toggleRow(this)"
            handler = re.compile(rf'''\bon[a-z]+\s*=\s*["']\s*(?:return\s+)?{self.word(symbol.name)}\s*\(''')
            for start, end in iter_matches(content, [handler]):
                yield self.make_usage(index, file_path, start, end, 'call')

        elif symbol.kind == 'selector':
            for start, end in iter_matches(content, markup_selector_patterns(symbol)):
                yield self.make_usage(index, file_path, start, end, 'reference')

        elif symbol.kind == 'variable':
            for start, end in iter_matches(content, custom_property_patterns(symbol)):
                yield self.make_usage(index, file_path, start, end, 'reference')

    def _class_usages(self, content: str, file_path: str, symbol: Symbol,
                      index: LineIndex) -> Iterator[Usage]:
        pattern = re.compile(self.word(symbol.name))
        for match in pattern.finditer(content):
            position = index.position(match.start())
            line = index.line_text(position.line)
            end = position.character + len(symbol.name)
            kind = self.classify_class_reference(line[:position.character], line[end:])
            if kind:
                yield self.make_usage(index, file_path, match.start(), match.end(), kind)

    @staticmethod
    def classify_class_reference(before: str, after: str) -> Optional[str]:
        """Decide how a class name is being used from the text around it.

        Args:
            before: Text on the same line preceding the name
            after: Text on the same line following the name

        Returns:
            Usage kind, or None when the occurrence is not a reference
        """
        # Strip a leading namespace qualifier: new \App\Models\Cart
        before = re.sub(r'\\?(?:[A-Za-z0-9_]+\\)*$', '', before)

        if re.search(r'\b(?:class|interface|trait|function)\s+$', before):
            return None
        if re.search(r'\bnew\s+$', before):
            return 'call'
        if re.search(r'\bextends\s+(?:[A-Za-z0-9_\\]+\s*,\s*)*$', before):
            return 'extend'
        if re.search(r'\bimplements\s+(?:[A-Za-z0-9_\\]+\s*,\s*)*$', before):
            return 'implement'
        if re.match(r'\s*use\s+', before):
            return 'import'
        if re.search(r'\binstanceof\s+$', before):
            return 'reference'
        if re.match(r'\s*::', after):
            return 'reference'
        # Type hints: function pay(Cart $cart), ?Cart $c, ): Cart
        if re.search(r'[(,?|]\s*$', before) and re.match(r'\s*&?\s*(?:\.\.\.)?\$', after):
            return 'reference'
        if re.search(r'\)\s*:\s*\??$', before):
            return 'reference'
        return None

    def _function_usages(self, content: str, file_path: str, symbol: Symbol,
                         index: LineIndex) -> Iterator[Usage]:
        call = re.compile(rf"{self.word(symbol.name)}\s*\(")
        for match in call.finditer(content):
            before = content[max(0, match.start() - 20):match.start()]
            if re.search(r'function\s+&?$', before) or re.search(r'(?:->|::|\$)\s*$', before):
                continue
            yield self.make_usage(index, file_path, match.start(), match.start() + len(symbol.name), 'call')

        for match in self._quoted_name(symbol.name).finditer(content):
            if HOOK_CALL.search(index.line_text(index.position(match.start()).line)):
                yield self.make_usage(index, file_path, match.start(), match.end(), 'reference')

    def _method_usages(self, content: str, file_path: str, symbol: Symbol,
                       index: LineIndex) -> Iterator[Usage]:
        name = re.escape(symbol.name)
        call = re.compile(rf'(?:->|::)\s*({name})\s*\(')
        for match in call.finditer(content):
            yield self.make_usage(index, file_path, match.start(1), match.end(1), 'call')

        # Callables: array($this, 'save'), [$this, 'save'], [Cart::class, 'save']
        callback = re.compile(
            rf'''(?:array\s*\(|\[)\s*(?:\$[A-Za-z0-9_]+|[A-Za-z0-9_\\]+::class|["'][A-Za-z0-9_\\]+["'])'''
            rf'''\s*,\s*["']({name})["']'''
        )
        for match in callback.finditer(content):
            yield self.make_usage(index, file_path, match.start(1), match.end(1), 'reference')

    def _inclusion_usages(self, content: str, file_path: str, symbol: Symbol,
                          index: LineIndex) -> Iterator[Usage]:
        basename = PurePath(symbol.file_path).name
        target = re.compile(rf'''["'][^"']*(?<![A-Za-z0-9_.-]){re.escape(basename)}["']''')
        for match in INCLUDE_STATEMENT.finditer(content):
            if target.search(match.group()):
                yield self.make_usage(index, file_path, match.start(), match.end(), 'inclusion')

    @staticmethod
    def _quoted_name(name: str) -> re.Pattern:
        return re.compile(rf'''(["']){re.escape(name)}\1''')
