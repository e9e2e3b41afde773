import hashlib
import os
from collections import defaultdict

from asset_collector.base import (
    is_url,
    KINDS,
)
from asset_collector.errors import (
    SourceNotFound,
    UnsupportedSourceType,
)
from asset_collector.struct import FrozenStruct


class FileSource(FrozenStruct):
    __slots__ = ()

    @property
    def compilable(self):
        return self.compile

    @property
    def identity(self):
        return self.path

    def read(self):
        try:
            with open(self.path, 'rb') as f:
                return f.read()
        except OSError as e:
            raise SourceNotFound(self.path, reason=e.strerror) from e

    def stat(self):
        try:
            st = os.stat(self.path)
        except OSError as e:
            raise SourceNotFound(self.path, reason=e.strerror) from e
        return st.st_mtime_ns, st.st_size


class InlineSource(FrozenStruct):
    __slots__ = ()

    compilable = True

    @property
    def identity(self):
        return 'inline:' + hashlib.sha256(self.content).hexdigest()

    def read(self):
        return self.content


class UrlSource(FrozenStruct):
    __slots__ = ()

    compilable = False

    @property
    def identity(self):
        return self.url


def check_kind(kind):
    if kind not in KINDS:
        raise UnsupportedSourceType(f'Unknown asset kind {kind!r}. Available kinds: {", ".join(KINDS)}')


class SourceRegistry:
    """
    The ordered sources of each asset kind. File sources are de-duplicated by normalized path
    and url sources by url, first occurrence wins. Inline sources are never de-duplicated.
    """

    def __init__(self, config):
        self.config = config
        self._sources = defaultdict(list)
        self._seen = defaultdict(set)
        self._versions = defaultdict(int)

    def normalize_path(self, path):
        if not isinstance(path, (str, os.PathLike)):
            raise UnsupportedSourceType(f'Asset paths must be strings or path-like objects, got {type(path).__name__}')
        path = os.fspath(path)
        if not os.path.isabs(path):
            path = os.path.join(self.config.source_root, path)
        return os.path.normcase(os.path.realpath(path))

    def url_for_path(self, path):
        root = os.path.normcase(os.path.realpath(self.config.source_root))
        if self.config.source_url is None or os.path.commonpath([root, path]) != root:
            raise UnsupportedSourceType(
                f'{path} is marked no-compile but has no public url. '
                f'No-compile files must live under the source root {root} and source_url must be set.'
            )
        return self.config.source_url + os.path.relpath(path, root).replace(os.sep, '/')

    def _append(self, kind, source, key=None):
        if key is not None:
            if key in self._seen[kind]:
                return False
            self._seen[kind].add(key)
        self._sources[kind].append(source)
        self._versions[kind] += 1
        return True

    def add_file(self, kind, path, compile=True):
        check_kind(kind)
        path = self.normalize_path(path)

        extension = os.path.splitext(path)[1].lower()
        if extension not in self.config.extensions[kind]:
            raise UnsupportedSourceType(
                f'{path} has the extension {extension or "(none)"!r} which is not a {kind} source. '
                f'Allowed extensions: {", ".join(self.config.extensions[kind])}'
            )

        if not os.path.isfile(path):
            raise SourceNotFound(path)
        if not os.access(path, os.R_OK):
            raise SourceNotFound(path, reason='permission denied')

        url = None if compile else self.url_for_path(path)
        return self._append(kind, FileSource(path=path, compile=bool(compile), url=url), key=('file', path))

    def add_url(self, kind, url):
        check_kind(kind)
        if not is_url(url):
            raise UnsupportedSourceType(f'{url!r} is not an absolute or protocol relative url')
        return self._append(kind, UrlSource(url=url), key=('url', url))

    def add_inline(self, kind, content):
        check_kind(kind)
        if isinstance(content, str):
            content = content.encode(self.config.charset)
        elif not isinstance(content, bytes):
            raise UnsupportedSourceType(f'Inline {kind} content must be str or bytes, got {type(content).__name__}')
        return self._append(kind, InlineSource(content=content))

    def get_sources(self, kind):
        check_kind(kind)
        return tuple(self._sources.get(kind, ()))

    def version(self, kind):
        return self._versions.get(kind, 0)
