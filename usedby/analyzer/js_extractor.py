"""Client-side behavior extractor: classes, functions, methods and events."""
import re
from typing import Iterable, Iterator

from .css_extractor import (custom_property_patterns, dom_selector_patterns, iter_matches,
                            markup_selector_patterns)
from .extractor import BEHAVIOR_EXTENSIONS, LanguageExtractor, LineIndex, language_for_path
from .models import Symbol, Usage

IDENT = r'[A-Za-z0-9_$]+'

CLASS_DECLARATION = re.compile(rf'\bclass\s+({IDENT})(?:\s+extends\s+([A-Za-z0-9_$.]+))?\s*\{{')
CLASS_EXPRESSION = re.compile(rf'\b(?:const|let|var)\s+({IDENT})\s*=\s*class\b[^{{]*\{{')
METHOD_PATTERN = re.compile(
    rf'(?m)^[ \t]*(?:static\s+)?(?:async\s+)?(?:get\s+|set\s+|\*\s*)?({IDENT})\s*\([^)]*\)\s*\{{'
)
FUNCTION_DECLARATION = re.compile(rf'\bfunction\s*\*?\s*({IDENT})\s*\(')
ARROW_FUNCTION = re.compile(
    rf'\b(?:const|let|var)\s+({IDENT})\s*=\s*(?:async\s+)?(?:\([^)]*\)|{IDENT})\s*=>'
)
FUNCTION_EXPRESSION = re.compile(rf'\b(?:const|let|var)\s+({IDENT})\s*=\s*(?:async\s+)?function\b')
LISTENER = re.compile(r'''(?:addEventListener|\.on)\s*\(\s*['"]([^'"]+)['"]\s*,\s*([A-Za-z0-9_$.]+)''')
INLINE_HANDLER = re.compile(rf'''\bon([a-z]+)\s*=\s*['"]\s*({IDENT})\s*\(''')

# Names that look like shorthand methods but are control flow
KEYWORDS = {'if', 'for', 'while', 'switch', 'catch', 'function', 'return', 'with', 'constructor'}
ANONYMOUS_HANDLERS = {'function', 'async'}


class BehaviorExtractor(LanguageExtractor):
    """Extract and cross-reference JavaScript and TypeScript symbols."""

    LANGUAGE = 'behavior'
    EXTENSIONS = BEHAVIOR_EXTENSIONS

    def _extract_symbols(self, content: str, file_path: str, index: LineIndex) -> Iterable[Symbol]:
        classes = []
        for match in CLASS_DECLARATION.finditer(content):
            classes.append((match, match.start()))
        for match in CLASS_EXPRESSION.finditer(content):
            classes.append((match, match.start(1)))
        classes.sort(key=lambda item: item[1])

        spans = self.block_spans(content, ((m.group(1), m.start()) for m, _ in classes))
        for (match, start), span in zip(classes, spans):
            name = match.group(1)
            yield self.make_symbol(index, file_path, name, 'class', start, match.end())

            _, body_start, body_end, closed = span
            if closed:
                yield from self._extract_methods(content, file_path, index, name, body_start, body_end)

        for pattern in (FUNCTION_DECLARATION, ARROW_FUNCTION, FUNCTION_EXPRESSION):
            for match in pattern.finditer(content):
                if self.enclosing_span(spans, match.start()):
                    continue
                start = match.start() if pattern is FUNCTION_DECLARATION else match.start(1)
                yield self.make_symbol(index, file_path, match.group(1), 'function', start, match.end())

        yield from self._extract_events(content, file_path, index)

    def _extract_methods(self, content: str, file_path: str, index: LineIndex,
                         class_name: str, body_start: int, body_end: int) -> Iterator[Symbol]:
        depth = 0
        cursor = body_start
        for match in METHOD_PATTERN.finditer(content, body_start, body_end):
            depth += content.count('{', cursor, match.start()) - content.count('}', cursor, match.start())
            cursor = match.start()
            name = match.group(1)
            if depth != 0 or name in KEYWORDS:
                continue
            start = match.start() + len(match.group()) - len(match.group().lstrip())
            yield self.make_symbol(index, file_path, name, 'method', start, match.end(), container=class_name)

    def _extract_events(self, content: str, file_path: str, index: LineIndex) -> Iterator[Symbol]:
        for match in LISTENER.finditer(content):
            handler = match.group(2)
            if handler in ANONYMOUS_HANDLERS:
                continue
            start = match.start() + (1 if match.group().startswith('.') else 0)
            yield self.make_symbol(index, file_path, match.group(1), 'event', start, match.end(),
                                   container=handler)

        for match in INLINE_HANDLER.finditer(content):
            yield self.make_symbol(index, file_path, match.group(1), 'event', match.start(), match.end(),
                                   container=match.group(2))

    # --- usages ----------------------------------------------------------

    def _collect_usages(self, content: str, file_path: str, symbol: Symbol,
                        index: LineIndex) -> Iterable[Usage]:
        language = language_for_path(symbol.file_path)

        if language == 'behavior':
            if symbol.kind == 'class':
                yield from self._class_usages(content, file_path, symbol, index)
            elif symbol.kind == 'function':
                yield from self._function_usages(content, file_path, symbol, index)
            elif symbol.kind == 'method':
                call = re.compile(rf'\.\s*({re.escape(symbol.name)})\s*\(')
                for match in call.finditer(content):
                    yield self.make_usage(index, file_path, match.start(1), match.end(1), 'call')
            elif symbol.kind == 'event':
                yield from self._event_usages(content, file_path, symbol, index)

        elif symbol.kind == 'selector':
            patterns = dom_selector_patterns(symbol) + markup_selector_patterns(symbol)
            for start, end in iter_matches(content, patterns):
                yield self.make_usage(index, file_path, start, end, 'reference')

        elif symbol.kind == 'variable':
            for start, end in iter_matches(content, custom_property_patterns(symbol)):
                yield self.make_usage(index, file_path, start, end, 'reference')

    def _class_usages(self, content: str, file_path: str, symbol: Symbol,
                      index: LineIndex) -> Iterator[Usage]:
        for match in re.finditer(self.word(symbol.name), content):
            position = index.position(match.start())
            line = index.line_text(position.line)
            before = line[:position.character]
            after = line[position.character + len(symbol.name):]
            if re.search(r'\bnew\s+$', before):
                kind = 'call'
            elif re.search(r'\bextends\s+$', before):
                kind = 'extend'
            elif re.search(r'\binstanceof\s+$', before):
                kind = 'reference'
            elif not before.rstrip().endswith('.') and re.match(r'\s*\.\s*[A-Za-z_$]', after):
                # Static access: Cart.fromJSON(data)
                kind = 'reference'
            elif self._is_import(line):
                kind = 'import'
            else:
                continue
            yield self.make_usage(index, file_path, match.start(), match.end(), kind)

    def _function_usages(self, content: str, file_path: str, symbol: Symbol,
                         index: LineIndex) -> Iterator[Usage]:
        for match in re.finditer(self.word(symbol.name), content):
            position = index.position(match.start())
            line = index.line_text(position.line)
            before = line[:position.character]
            after = line[position.character + len(symbol.name):]

            if self.is_definition(before, after):
                continue
            if re.match(r'\s*\(', after):
                kind = 'call'
            elif self._is_import(line):
                kind = 'import'
            elif re.search(r'[(,]\s*$', before) and re.match(r'\s*[,)]', after):
                # Passed as a callback: setTimeout(refresh, 500), .then(render)
                kind = 'reference'
            else:
                continue
            yield self.make_usage(index, file_path, match.start(), match.end(), kind)

    @staticmethod
    def is_definition(before: str, after: str) -> bool:
        """Check whether a name occurrence is the name of a definition.

        Args:
            before: Text on the same line preceding the name
            after: Text on the same line following the name

        Returns:
            True for ``function name(``, ``const name = ...`` and shorthand
            method heads like ``name() {``
        """
        if re.search(r'\bfunction\s*\*?\s*$', before):
            return True
        if re.search(r'\b(?:const|let|var)\s+$', before) and re.match(r'\s*=', after):
            return True
        if re.fullmatch(r'\s*(?:static\s+)?(?:async\s+)?', before) and re.match(r'\s*\([^)]*\)\s*\{', after):
            return True
        return False

    def _event_usages(self, content: str, file_path: str, symbol: Symbol,
                      index: LineIndex) -> Iterator[Usage]:
        literal = re.compile(rf'''(["']){re.escape(symbol.name)}\1''')
        for match in literal.finditer(content):
            before = content[max(0, match.start() - 30):match.start()]
            # Another listener registration is a definition, not a usage
            if re.search(r'(?:addEventListener|\.on)\s*\(\s*$', before):
                continue
            yield self.make_usage(index, file_path, match.start(), match.end(), 'reference')

    @staticmethod
    def _is_import(line: str) -> bool:
        return bool(re.match(r'\s*import\b', line) or re.search(r'\brequire\s*\(', line))
