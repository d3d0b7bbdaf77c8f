"""Markdown to Typst markup conversion.

markdown-it-py tokenizes the source; ``iter_events`` flattens its nested token
stream into a lazy sequence of start/end/text events, and ``TypstConverter``
consumes them one at a time with a small amount of running state.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional

from markdown_it import MarkdownIt


TYPST_SPECIAL = set('#$*_`<>@[]')


class EventKind(str, Enum):
    start = 'start'
    end = 'end'
    text = 'text'
    code = 'code'
    soft_break = 'soft_break'
    hard_break = 'hard_break'
    rule = 'rule'


@dataclass(frozen=True)
class Event:
    """One structural or literal event in a markdown document."""
    kind: EventKind
    tag: Optional[str] = None       # paragraph, heading, list, item, table_cell, ...
    text: str = ''
    level: int = 0                  # heading level
    url: Optional[str] = None       # link/image destination
    alignments: tuple = field(default=())   # table column alignments


# markdown-it open/close token base name -> event tag
PAIRED_TAGS: dict[str, str] = {
    'paragraph': 'paragraph',
    'heading': 'heading',
    'blockquote': 'blockquote',
    'bullet_list': 'list',
    'ordered_list': 'list',
    'list_item': 'item',
    'table': 'table',
    'thead': 'table_head',
    'tr': 'table_row',
    'th': 'table_cell',
    'td': 'table_cell',
    'em': 'emphasis',
    'strong': 'strong',
    's': 'strikethrough',
    'link': 'link',
}


def make_parser() -> MarkdownIt:
    """CommonMark parser with the table and strikethrough extensions."""
    return MarkdownIt('commonmark').enable(['table', 'strikethrough'])


def _alignment(token) -> Optional[str]:
    style = token.attrGet('style') or ''
    if 'text-align:' in style:
        return style.split('text-align:', 1)[1].strip().rstrip(';')
    return None


def _table_alignments(tokens: list, start: int) -> tuple:
    """Alignments of the first row's cells, scanning forward from a table_open token."""
    alignments = []
    for tok in tokens[start + 1:]:
        if tok.type in ('th_open', 'td_open'):
            alignments.append(_alignment(tok))
        elif tok.type == 'tr_close':
            break
    return tuple(alignments)


def _walk(tokens: list) -> Iterator[Event]:
    for i, tok in enumerate(tokens):
        if tok.type in ('paragraph_open', 'paragraph_close') and tok.hidden:
            continue  # tight list items carry no paragraph boundaries

        if tok.type == 'inline':
            yield from _walk(tok.children or [])
        elif tok.type in ('text', 'text_special'):
            yield Event(EventKind.text, text=tok.content)
        elif tok.type == 'code_inline':
            yield Event(EventKind.code, text=tok.content)
        elif tok.type == 'softbreak':
            yield Event(EventKind.soft_break)
        elif tok.type == 'hardbreak':
            yield Event(EventKind.hard_break)
        elif tok.type == 'hr':
            yield Event(EventKind.rule)
        elif tok.type in ('fence', 'code_block'):
            yield Event(EventKind.start, 'code_block')
            yield Event(EventKind.text, text=tok.content)
            yield Event(EventKind.end, 'code_block')
        elif tok.type == 'image':
            url = tok.attrGet('src')
            yield Event(EventKind.start, 'image', url=url)
            yield Event(EventKind.end, 'image', url=url)
        elif tok.type.endswith('_open') or tok.type.endswith('_close'):
            base, _, suffix = tok.type.rpartition('_')
            tag = PAIRED_TAGS.get(base)
            if tag is None:
                continue
            kind = EventKind.start if suffix == 'open' else EventKind.end
            level = int(tok.tag[1:]) if tag == 'heading' else 0
            url = tok.attrGet('href') if tag == 'link' else None
            alignments = _table_alignments(tokens, i) if tag == 'table' and kind == EventKind.start else ()
            yield Event(kind, tag, level=level, url=url, alignments=alignments)


def iter_events(markdown: str, parser: Optional[MarkdownIt] = None) -> Iterator[Event]:
    """Lazily yield the structural events of a markdown string."""
    tokens = (parser or make_parser()).parse(markdown)
    yield from _walk(tokens)


def escape_typst(text: str) -> str:
    """Backslash-escape characters that carry meaning in Typst markup."""
    return ''.join(f'\\{ch}' if ch in TYPST_SPECIAL else ch for ch in text)


class TypstConverter:
    """Event-driven markdown to Typst converter."""

    def __init__(self):
        self.output: list[str] = []
        self.list_depth = 0
        self.in_code_block = False
        self.in_table = False
        self.table_alignments: tuple = ()
        self.table_cell_index = 0

    def emit(self, text: str) -> None:
        self.output.append(text)

    def process(self, event: Event) -> None:
        if event.kind == EventKind.start:
            self.start(event)
        elif event.kind == EventKind.end:
            self.end(event)
        elif event.kind == EventKind.text:
            self.emit(event.text if self.in_code_block else escape_typst(event.text))
        elif event.kind == EventKind.code:
            self.emit(f'`{event.text}`')
        elif event.kind == EventKind.soft_break:
            self.emit(' ')
        elif event.kind == EventKind.hard_break:
            self.emit(' \\\n')
        elif event.kind == EventKind.rule:
            self.emit('#line(length: 100%)\n')

    def start(self, event: Event) -> None:
        tag = event.tag
        if tag == 'heading':
            self.emit('=' * event.level + ' ')
        elif tag == 'blockquote':
            self.emit('#quote[\n')
        elif tag == 'code_block':
            self.in_code_block = True
            self.emit('```\n')
        elif tag == 'list':
            if self.list_depth and not self._at_line_start():
                self.emit('\n')
            self.list_depth += 1
        elif tag == 'item':
            self.emit('  ' * max(self.list_depth - 1, 0) + '- ')
        elif tag == 'emphasis':
            self.emit('_')
        elif tag == 'strong':
            self.emit('*')
        elif tag == 'strikethrough':
            self.emit('#strike[')
        elif tag == 'link':
            self.emit(f'#link("{event.url}")[')
        elif tag == 'image':
            self.emit(f'#image("{event.url}")')
        elif tag == 'table':
            self.in_table = True
            self.table_alignments = event.alignments
            columns = ', '.join('auto' for _ in self.table_alignments)
            self.emit(f'#table(\n  columns: ({columns}),\n')
        elif tag in ('table_head', 'table_row'):
            self.table_cell_index = 0
        elif tag == 'table_cell':
            self.emit('  [')

    def end(self, event: Event) -> None:
        tag = event.tag
        if tag == 'paragraph':
            self.emit('\n\n')
        elif tag == 'heading':
            self.emit('\n')
        elif tag == 'blockquote':
            self.emit(']\n')
        elif tag == 'code_block':
            self.in_code_block = False
            self.emit('```\n')
        elif tag == 'list':
            self.list_depth = max(self.list_depth - 1, 0)
            if self.list_depth == 0:
                self.emit('\n')
        elif tag == 'item':
            if not self._at_line_start():
                self.emit('\n')
        elif tag == 'emphasis':
            self.emit('_')
        elif tag == 'strong':
            self.emit('*')
        elif tag in ('strikethrough', 'link'):
            self.emit(']')
        elif tag == 'table':
            self.in_table = False
            self.emit(')\n')
        elif tag == 'table_row':
            self.emit('\n')
        elif tag == 'table_cell':
            self.emit('],')
            self.table_cell_index += 1

    def _at_line_start(self) -> bool:
        return not self.output or self.output[-1].endswith('\n')

    def finish(self) -> str:
        return ''.join(self.output).rstrip('\n')


def markdown_to_typst(markdown: str) -> str:
    """Convert markdown text to Typst markup. Pure; never raises on malformed input."""
    converter = TypstConverter()
    for event in iter_events(markdown):
        converter.process(event)
    return converter.finish()
