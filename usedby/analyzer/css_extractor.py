"""Stylesheet extractor: rule selectors and custom properties.

The module-level markup helpers are also used by the script and behavior
extractors, since class and id selectors are referenced from templates and
DOM code rather than from other stylesheets.
"""
import re
from typing import Iterable, Iterator, List, Optional, Tuple

from .extractor import STYLESHEET_EXTENSIONS, LanguageExtractor, LineIndex
from .models import Symbol, Usage

# Keyframe steps look like selectors but name nothing
KEYFRAME_STEPS = {'from', 'to'}

SIMPLE_SELECTOR = re.compile(r'([.#]?)(-?[A-Za-z_][A-Za-z0-9_-]*)')
CUSTOM_PROPERTY = re.compile(r'(?<![A-Za-z0-9_-])(--[A-Za-z0-9_-]+)\s*:')


def selector_type(symbol: Symbol) -> str:
    """Classify a selector symbol as 'class', 'id' or 'element'."""
    container = symbol.container or symbol.name
    name = re.escape(symbol.name)
    if re.search(rf'\.{name}(?![A-Za-z0-9_-])', container):
        return 'class'
    if re.search(rf'#{name}(?![A-Za-z0-9_-])', container):
        return 'id'
    return 'element'


def _css_word(name: str) -> str:
    return rf'(?<![A-Za-z0-9_-]){re.escape(name)}(?![A-Za-z0-9_-])'


def markup_selector_patterns(symbol: Symbol) -> List[re.Pattern]:
    """Patterns matching HTML attributes that apply a selector symbol."""
    kind = selector_type(symbol)
    name = _css_word(symbol.name)
    if kind == 'class':
        return [re.compile(rf'''\bclass(?:Name)?\s*=\s*["'][^"'\n]*{name}[^"'\n]*["']''')]
    if kind == 'id':
        return [re.compile(rf'''\bid\s*=\s*["']{name}["']''')]
    return []


def dom_selector_patterns(symbol: Symbol) -> List[re.Pattern]:
    """Patterns matching DOM and jQuery lookups of a selector symbol."""
    kind = selector_type(symbol)
    escaped = re.escape(symbol.name)
    if kind == 'class':
        return [
            re.compile(rf'''classList\.(?:add|remove|toggle|contains|replace)\s*\([^)]*["']{escaped}["']'''),
            re.compile(rf'''getElementsByClassName\s*\(\s*["']{escaped}["']'''),
            re.compile(rf'''(?:addClass|removeClass|toggleClass|hasClass)\s*\(\s*["'][^"']*{_css_word(symbol.name)}[^"']*["']'''),
            re.compile(rf'''(?:querySelector(?:All)?|\$|jQuery|closest|matches|find|is)\s*\(\s*["'][^"']*\.{escaped}(?![A-Za-z0-9_-])[^"']*["']'''),
        ]
    if kind == 'id':
        return [
            re.compile(rf'''getElementById\s*\(\s*["']{escaped}["']'''),
            re.compile(rf'''(?:querySelector(?:All)?|\$|jQuery|closest|matches|find|is)\s*\(\s*["'][^"']*#{escaped}(?![A-Za-z0-9_-])[^"']*["']'''),
        ]
    return []


def var_reference_pattern(symbol: Symbol) -> re.Pattern:
    """Pattern matching a var() lookup of a custom property."""
    return re.compile(rf'var\s*\(\s*{re.escape(symbol.name)}(?![A-Za-z0-9_-])')


def custom_property_patterns(symbol: Symbol) -> List[re.Pattern]:
    """Patterns reading or writing a custom property from markup or scripts."""
    name = re.escape(symbol.name)
    return [
        var_reference_pattern(symbol),
        re.compile(rf'''(?:getPropertyValue|setProperty|removeProperty)\s*\(\s*["']{name}["']'''),
    ]


def iter_matches(content: str, patterns: Iterable[re.Pattern]) -> Iterator[Tuple[int, int]]:
    """Yield (start, end) offsets for every match of every pattern."""
    for pattern in patterns:
        for match in pattern.finditer(content):
            yield match.start(), match.end()


class StylesheetExtractor(LanguageExtractor):
    """Extract selectors and custom properties from CSS, SCSS and LESS."""

    LANGUAGE = 'stylesheet'
    EXTENSIONS = STYLESHEET_EXTENSIONS

    def _extract_symbols(self, content: str, file_path: str, index: LineIndex) -> Iterable[Symbol]:
        yield from self._extract_selectors(content, file_path, index)

        for match in CUSTOM_PROPERTY.finditer(content):
            name = match.group(1)
            yield self.make_symbol(index, file_path, name, 'variable', match.start(1), match.end(1))

    def _extract_selectors(self, content: str, file_path: str, index: LineIndex) -> Iterator[Symbol]:
        for start, prelude in self._rule_preludes(content):
            offset = start
            for part in prelude.split(','):
                part_start = offset + len(part) - len(part.lstrip())
                offset += len(part) + 1
                selector = part.strip()
                name = self._subject_name(selector)
                if name is None:
                    continue
                yield self.make_symbol(index, file_path, name, 'selector',
                                       part_start, part_start + len(selector), container=selector)

    @staticmethod
    def _rule_preludes(content: str) -> Iterator[Tuple[int, str]]:
        """Yield (offset, text) of every rule prelude (the text before '{')."""
        start = 0
        i = -1
        while i + 1 < len(content):
            i += 1
            char = content[i]
            if content.startswith('/*', i):
                # Braces inside comments (e.g. embedded diagrams) open no rule
                comment_end = content.find('*/', i + 2)
                i = len(content) if comment_end == -1 else comment_end + 1
            elif char in ';}':
                start = i + 1
            elif char == '{':
                text = content[start:i]
                text_start = start
                start = i + 1
                comment_end = text.rfind('*/')
                if comment_end != -1:
                    text_start += comment_end + 2
                    text = text[comment_end + 2:]
                stripped = text.strip()
                if not stripped or stripped.startswith('@') or stripped.endswith(':'):
                    continue
                if stripped.startswith('#{') or '$' in stripped:
                    continue
                yield text_start, text

    @staticmethod
    def _subject_name(selector: str) -> Optional[str]:
        """Name a selector after the first class/id of its rightmost compound."""
        if not selector or '%' in selector:
            return None
        compound = re.split(r'\s*[>+~]\s*|\s+', selector)[-1]
        compound = re.sub(r'::?[A-Za-z-]+(?:\([^)]*\))?', '', compound)
        compound = re.sub(r'\[[^\]]*\]', '', compound)
        tokens = SIMPLE_SELECTOR.findall(compound)
        if not tokens:
            return None
        for prefix, name in tokens:
            if prefix:
                return name
        name = tokens[0][1]
        if name in KEYFRAME_STEPS or compound.startswith('&'):
            return None
        return name

    def _collect_usages(self, content: str, file_path: str, symbol: Symbol,
                        index: LineIndex) -> Iterable[Usage]:
        if symbol.kind == 'variable':
            for start, end in iter_matches(content, [var_reference_pattern(symbol)]):
                yield self.make_usage(index, file_path, start, end, 'reference')
        elif symbol.kind == 'selector' and selector_type(symbol) == 'class':
            escaped = re.escape(symbol.name)
            extend = re.compile(rf'@extend\s+\.{escaped}(?![A-Za-z0-9_-])')
            for start, end in iter_matches(content, [extend]):
                yield self.make_usage(index, file_path, start, end, 'extend')
            # LESS mixin call: .name; or .name();
            mixin = re.compile(rf'(?m)^\s*\.{escaped}\s*(?:\(\s*\))?\s*;')
            for match in mixin.finditer(content):
                start = match.start() + len(match.group()) - len(match.group().lstrip())
                yield self.make_usage(index, file_path, start, match.end(), 'call')
