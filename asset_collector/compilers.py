import functools
import logging
import re
from contextlib import contextmanager

import csscompressor
import jsmin
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from asset_collector import __version__
from asset_collector.base import (
    CSS,
    JS,
)
from asset_collector.config import (
    _as_tuple,
    _per_kind,
    DEFAULT_STAGES,
)
from asset_collector.errors import CompileError

log = logging.getLogger('asset_collector')


class Stage:
    # language=rst
    """
    One transformation pass over the bytes of a bundle. Stages must be pure: the same input bytes must
    always give the same output bytes, since compiled bundles are cached by their inputs and the
    `identity` of every stage in the chain. Bump `version` whenever the output of a stage changes.

    The identity also carries the dotted path of the stage class, so two stages that happen to share
    a `name` never share bundles.
    """

    name = None
    version = '1'

    def __init__(self, kind=None, charset='utf-8'):
        self.kind = kind
        self.charset = charset
        if self.name is None:
            self.name = type(self).__qualname__

    @property
    def origin(self):
        return f'{type(self).__module__}.{type(self).__qualname__}'

    @property
    def identity(self):
        return f'{self.name}:{self.version}@{self.origin}'

    def transform(self, data: bytes) -> bytes:
        raise NotImplementedError  # pragma: no cover

    def __repr__(self):
        return f'<{type(self).__name__}: {self.identity}>'


class Minifier(Stage):
    name = 'minify'

    def __init__(self, kind=None, charset='utf-8'):
        super().__init__(kind=kind, charset=charset)
        if kind == CSS:
            self.minify = csscompressor.compress
            self.version = f'csscompressor-{csscompressor.__version__}'
        elif kind == JS:
            # Template literals are strings too
            self.minify = functools.partial(jsmin.jsmin, quote_chars='\'"`')
            self.version = f'jsmin-{getattr(jsmin, "__version__", "unknown")}'
        else:
            raise ImproperlyConfigured(f'There is no minifier for {kind!r} assets')

    def transform(self, data):
        return self.minify(data.decode(self.charset)).encode(self.charset)


class SourceMapStripper(Stage):
    """
    Drops sourceMappingURL comments. They point at maps for the individual files and are wrong for a bundle.
    """

    name = 'strip_source_maps'

    _source_map_re = re.compile(
        rb'^[ \t]*(?://[#@] sourceMappingURL=[^\r\n]*|/\*[#@] sourceMappingURL=[^*]*\*/)[ \t]*(\r?\n)?',
        re.MULTILINE,
    )

    def transform(self, data):
        return self._source_map_re.sub(b'', data)


class CallableStage(Stage):
    """
    Wraps a plain `bytes -> bytes` function. The function is identified by its import path, so
    lambdas, nested functions and other callables without one need an explicit `name`.
    """

    def __init__(self, func, name=None, version='1', kind=None, charset='utf-8'):
        qualname = getattr(func, '__qualname__', None)
        if name is None and (qualname is None or '<' in qualname):
            raise ImproperlyConfigured(
                f'{func!r} has no import path to identify it by. Give the stage a name, '
                f'e.g. CallableStage(func, name=...), or use a module level function.'
            )
        self.func = func
        self.name = name or qualname
        self.version = version
        super().__init__(kind=kind, charset=charset)

    @property
    def origin(self):
        return f'{getattr(self.func, "__module__", None)}.{getattr(self.func, "__qualname__", type(self.func).__qualname__)}'

    def transform(self, data):
        result = self.func(data)
        if not isinstance(result, bytes):
            raise TypeError(f'{self.name} returned {type(result).__name__}, expected bytes')
        return result


class Concatenator:
    def __init__(self, separator=b''):
        assert isinstance(separator, bytes)
        self.separator = separator

    @property
    def identity(self):
        return f'concat:{self.separator!r}'

    def join(self, parts):
        return self.separator.join(parts)


def describe_sources(sources):
    return ', '.join(source.identity for source in sources) or '(no sources)'


class CompilerChain:
    def __init__(self, kind, stages=(), concatenator=None, charset='utf-8'):
        self.kind = kind
        self.stages = tuple(stages)
        self.concatenator = concatenator if concatenator is not None else Concatenator()
        self.charset = charset

    @property
    def identity(self):
        return '|'.join(
            [f'asset_collector-{__version__}', self.kind, self.charset, self.concatenator.identity]
            + [stage.identity for stage in self.stages]
        )

    def compile(self, sources, contents=None):
        sources = list(sources)
        if contents is None:
            contents = [source.read() for source in sources]
        data = self.concatenator.join(contents)
        for stage in self.stages:
            log.debug('Running stage %s on %d %s source(s)', stage.identity, len(sources), self.kind)
            try:
                data = stage.transform(data)
            except Exception as e:
                raise CompileError(stage=stage.name, source=describe_sources(sources), cause=e) from e
        return data

    def __repr__(self):
        return f'<CompilerChain: {self.identity}>'


_stages = {}


def register_stage(name, stage):
    assert name not in _stages, f'{name} is already registered'
    assert isinstance(stage, Stage) or (isinstance(stage, type) and issubclass(stage, Stage))
    _stages[name] = stage

    @contextmanager
    def _unregister():
        try:
            yield stage
        finally:
            unregister_stage(name)

    return _unregister()


def unregister_stage(name):
    assert name in _stages
    del _stages[name]


def get_stage(spec, *, kind, charset='utf-8'):
    if isinstance(spec, str):
        try:
            spec = _stages[spec]
        except KeyError:
            if '.' not in spec:
                stage_names = '\n    '.join(_stages.keys())
                raise ImproperlyConfigured(
                    f'''No registered stage {spec}. Register a stage with register_stage() or use a dotted path.

Available stages:
    {stage_names}'''
                ) from None
            try:
                spec = import_string(spec)
            except ImportError as e:
                raise ImproperlyConfigured(f'Could not import stage {spec}: {e}') from e

    if isinstance(spec, Stage):
        return spec
    if isinstance(spec, type) and issubclass(spec, Stage):
        return spec(kind=kind, charset=charset)
    if callable(spec):
        return CallableStage(spec, kind=kind, charset=charset)
    raise ImproperlyConfigured(f'{spec!r} is not a stage')


def build_chain(kind, config):
    return CompilerChain(
        kind=kind,
        stages=[get_stage(spec, kind=kind, charset=config.charset) for spec in config.stages[kind]],
        concatenator=Concatenator(config.separators[kind].encode(config.charset)),
        charset=config.charset,
    )


def validate_stages(stages, charset='utf-8'):
    """
    Resolve every configured stage once, so that a typo in the settings fails at startup and not on
    the first page that needs a bundle.
    """
    return {
        kind: [get_stage(spec, kind=kind, charset=charset) for spec in specs]
        for kind, specs in _per_kind('ASSET_COLLECTOR_STAGES', stages, DEFAULT_STAGES, _as_tuple).items()
    }


register_stage('minify', Minifier)
register_stage('strip_source_maps', SourceMapStripper)
