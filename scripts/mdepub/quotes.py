"""
Typographic quote conversion over a markdown event stream.

The markdown tree is flattened into START / END / TEXT / CODE events.
QuoteConverter rewrites straight quotes in TEXT events to curly ones and
leaves everything inside <pre> blocks alone.
"""

from collections import namedtuple


START = "start"
END = "end"
TEXT = "text"
CODE = "code"

Event = namedtuple("Event", ["kind", "tag", "text"])

# Elements whose text is code and never typographically converted
CODE_BLOCK_TAGS = {"pre"}
INLINE_CODE_TAGS = {"code", "kbd", "samp"}

QUOTES = {
    "'": ("‘", "’"),
    '"': ("“", "”"),
}


def convert_quotes_to_curly(text):
    """
    Replace straight quotes with curly ones.

    A quote preceded by whitespace (or at the start of the run) opens,
    anything else closes.
    """
    preceded_by_whitespace = True
    out = []
    for ch in text:
        if ch in QUOTES:
            opening, closing = QUOTES[ch]
            out.append(opening if preceded_by_whitespace else closing)
        else:
            out.append(ch)
        preceded_by_whitespace = ch.isspace()
    return "".join(out)


def _walk(element, inline_code=False):
    """
    Yield (event, owner, attr) in document order; `owner.attr` holds the
    text of TEXT and CODE events, START and END events carry no owner.
    """
    is_code = inline_code or element.tag in INLINE_CODE_TAGS
    kind = CODE if is_code else TEXT

    yield Event(START, element.tag, None), None, None
    if element.text:
        yield Event(kind, element.tag, element.text), element, "text"
    for child in element:
        yield from _walk(child, is_code)
        # The tail belongs to the parent
        if child.tail:
            yield Event(kind, element.tag, child.tail), child, "tail"
    yield Event(END, element.tag, None), None, None


def iter_events(element):
    """Yield the events of an ElementTree subtree in document order."""
    for event, _owner, _attr in _walk(element):
        yield event


class QuoteConverter:
    """
    Two-state filter: Normal and InsideCodeBlock.

    Usage:
        converter = QuoteConverter(enabled=True)
        events = [converter.convert(e) for e in iter_events(root)]
    """

    def __init__(self, enabled):
        self.enabled = enabled
        self.convert_text = True

    def convert(self, event):
        if not self.enabled:
            return event

        if event.kind == START and event.tag in CODE_BLOCK_TAGS:
            self.convert_text = False
        elif event.kind == END and event.tag in CODE_BLOCK_TAGS:
            self.convert_text = True
        elif event.kind == TEXT and self.convert_text:
            return event._replace(text=convert_quotes_to_curly(event.text))
        return event

    def apply(self, root):
        """Convert an ElementTree subtree in place."""
        if not self.enabled:
            return
        for event, owner, attr in _walk(root):
            converted = self.convert(event)
            if owner is not None and converted.text != event.text:
                setattr(owner, attr, converted.text)
