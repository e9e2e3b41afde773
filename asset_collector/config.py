import codecs
import os

from django.core.exceptions import ImproperlyConfigured

from asset_collector.base import (
    CSS,
    JS,
    KINDS,
)
from asset_collector.struct import FrozenStruct

DEFAULT_STAGES = {
    CSS: ('minify',),
    JS: ('minify',),
}

DEFAULT_SEPARATORS = {
    CSS: '',
    # A newline ends trailing line comments, the semicolon ends an unterminated last statement
    JS: '\n;\n',
}

DEFAULT_EXTENSIONS = {
    CSS: ('.css',),
    JS: ('.js',),
}

DEFAULT_CHARSET = 'utf-8'
DEFAULT_INDEX_NAME = '.index.json'


def _per_kind(name, value, default, convert):
    if value is None:
        value = {}
    if not isinstance(value, dict):
        raise ImproperlyConfigured(f'{name} must be a dict keyed by asset kind ({", ".join(KINDS)}), got {value!r}')
    unknown = sorted(set(value) - set(KINDS))
    if unknown:
        raise ImproperlyConfigured(f'{name} has unknown asset kind(s): {", ".join(map(str, unknown))}')
    return {kind: convert(value.get(kind, default[kind])) for kind in KINDS}


def _as_tuple(value):
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return (value,)


def _with_slash(url):
    return url if url.endswith('/') else url + '/'


class AssetsConfig(FrozenStruct):
    # language=rst
    """
    Explicit configuration for an :class:`AssetsCollector`. Build one with
    :meth:`AssetsConfig.build` or, in a Django project, with :meth:`AssetsConfig.from_settings`:

    .. code-block:: python

        config = AssetsConfig.build(
            source_root='/srv/app/assets',
            output_dir='/srv/app/static/bundles',
            output_url='/static/bundles/',
            stages=dict(css=['minify'], js=['strip_source_maps', 'minify']),
        )

    `stages` entries are registered stage names, dotted import paths, `Stage` instances or plain callables.
    """

    __slots__ = ()

    @classmethod
    def build(
        cls,
        *,
        source_root,
        output_dir,
        output_url,
        source_url=None,
        stages=None,
        separators=None,
        extensions=None,
        charset=DEFAULT_CHARSET,
        mtime_check=True,
        index_name=DEFAULT_INDEX_NAME,
    ):
        if not source_root:
            raise ImproperlyConfigured('AssetsConfig needs a source_root. Set ASSET_COLLECTOR_SOURCE_ROOT or BASE_DIR.')
        if not output_dir:
            raise ImproperlyConfigured('AssetsConfig needs an output_dir. Set ASSET_COLLECTOR_OUTPUT_DIR or STATIC_ROOT.')
        if not output_url:
            raise ImproperlyConfigured('AssetsConfig needs an output_url. Set ASSET_COLLECTOR_OUTPUT_URL or STATIC_URL.')

        try:
            codecs.lookup(charset)
        except LookupError:
            raise ImproperlyConfigured(f'Unknown charset {charset!r}') from None

        if not index_name or os.sep in index_name:
            raise ImproperlyConfigured(f'index_name must be a plain file name, got {index_name!r}')

        return cls(
            source_root=os.path.abspath(os.fspath(source_root)),
            source_url=_with_slash(str(source_url)) if source_url else None,
            output_dir=os.path.abspath(os.fspath(output_dir)),
            output_url=_with_slash(str(output_url)),
            stages=_per_kind('stages', stages, DEFAULT_STAGES, _as_tuple),
            separators=_per_kind('separators', separators, DEFAULT_SEPARATORS, str),
            extensions=_per_kind(
                'extensions', extensions, DEFAULT_EXTENSIONS, lambda x: tuple(e.lower() for e in _as_tuple(x))
            ),
            charset=charset,
            mtime_check=bool(mtime_check),
            index_name=index_name,
        )

    @classmethod
    def from_settings(cls, **overrides):
        """
        Read the ASSET_COLLECTOR_* Django settings, falling back on BASE_DIR, STATIC_ROOT and STATIC_URL.
        Keyword arguments override whatever the settings say.
        """
        from django.conf import settings

        static_url = getattr(settings, 'STATIC_URL', None)
        static_root = getattr(settings, 'STATIC_ROOT', None)

        output_dir = getattr(settings, 'ASSET_COLLECTOR_OUTPUT_DIR', None)
        if output_dir is None and static_root:
            output_dir = os.path.join(static_root, 'bundles')

        output_url = getattr(settings, 'ASSET_COLLECTOR_OUTPUT_URL', None)
        if output_url is None and static_url:
            output_url = _with_slash(static_url) + 'bundles/'

        kwargs = dict(
            source_root=getattr(settings, 'ASSET_COLLECTOR_SOURCE_ROOT', getattr(settings, 'BASE_DIR', None)),
            source_url=getattr(settings, 'ASSET_COLLECTOR_SOURCE_URL', static_url),
            output_dir=output_dir,
            output_url=output_url,
            stages=getattr(settings, 'ASSET_COLLECTOR_STAGES', None),
            separators=getattr(settings, 'ASSET_COLLECTOR_SEPARATORS', None),
            extensions=getattr(settings, 'ASSET_COLLECTOR_EXTENSIONS', None),
            charset=getattr(settings, 'ASSET_COLLECTOR_CHARSET', DEFAULT_CHARSET),
            mtime_check=getattr(settings, 'ASSET_COLLECTOR_MTIME_CHECK', True),
            index_name=getattr(settings, 'ASSET_COLLECTOR_INDEX_NAME', DEFAULT_INDEX_NAME),
        )
        kwargs.update(overrides)
        return cls.build(**kwargs)

    @property
    def index_path(self):
        return os.path.join(self.output_dir, self.index_name)
