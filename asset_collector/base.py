import re

CSS = 'css'
JS = 'js'
KINDS = (CSS, JS)

MIME_TYPES = {
    CSS: 'text/css',
    JS: 'text/javascript',
}

_url_re = re.compile(r'^(https?:)?//', re.IGNORECASE)


def is_url(s):
    return isinstance(s, str) and bool(_url_re.match(s))
