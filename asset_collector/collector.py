import base64
import logging
import os
from itertools import groupby

from django.utils import timezone

from asset_collector.base import (
    CSS,
    is_url,
    JS,
    MIME_TYPES,
)
from asset_collector.cache import (
    CompiledBundle,
    digest,
    FingerprintCache,
)
from asset_collector.compilers import build_chain
from asset_collector.config import AssetsConfig
from asset_collector.errors import (
    CacheWriteError,
    UnsupportedSourceType,
)
from asset_collector.sources import (
    FileSource,
    SourceRegistry,
)
from asset_collector.struct import Struct

log = logging.getLogger('asset_collector')


def data_url(kind, data, charset):
    return f'data:{MIME_TYPES[kind]};charset={charset};base64,{base64.b64encode(data).decode("ascii")}'


class AssetsCollector:
    # language=rst
    """
    Collects the style sheets and scripts a page needs while it is being built, and hands out the urls
    of the compiled bundles when the head of the page is rendered.

    .. code-block:: python

        assets = AssetsCollector()
        assets.add_css(['css/base.css', 'css/forms.css'])
        assets.add_css('https://cdn.example.com/widgets.css')
        assets.add_js_content('window.page_id = 17;')

        assets.get_css()  # ['/static/bundles/6f1e....css', 'https://cdn.example.com/widgets.css']

    Consecutive compilable sources are concatenated, run through the stages configured for their kind
    and published under a fingerprint of their content. Urls, and files added with `compile=False`,
    are passed through as is, in their place in the order.

    A collector lives for one page render. The cache behind it is shared by the whole process.
    """

    def __init__(self, config=None, cache=None):
        if config is None:
            config = AssetsConfig.from_settings()
        self.config = config
        self.cache = cache if cache is not None else FingerprintCache.for_config(config)
        self.registry = SourceRegistry(config)
        self._chains = {}
        self._memo = {}

    def chain(self, kind):
        try:
            return self._chains[kind]
        except KeyError:
            chain = self._chains[kind] = build_chain(kind, self.config)
            return chain

    # Write surface

    def _add(self, kind, paths, compile):
        if isinstance(paths, (str, bytes, os.PathLike)):
            paths = [paths]
        elif isinstance(paths, dict) or not hasattr(paths, '__iter__'):
            raise UnsupportedSourceType(f'Expected a path or a sequence of paths, got {type(paths).__name__}')

        for path in paths:
            if is_url(path):
                self.registry.add_url(kind, path)
            else:
                self.registry.add_file(kind, path, compile=compile)

    def add_css(self, paths, compile=True):
        self._add(CSS, paths, compile)

    def add_js(self, paths, compile=True):
        self._add(JS, paths, compile)

    def add_css_content(self, content):
        self.registry.add_inline(CSS, content)

    def add_js_content(self, content):
        self.registry.add_inline(JS, content)

    def get_sources(self, kind):
        return self.registry.get_sources(kind)

    # Read surface

    def get_css(self):
        return self._collect(CSS)[0]

    def get_js(self):
        return self._collect(JS)[0]

    def get_bundles(self, kind):
        return self._collect(kind)[1]

    def _memo_key(self, kind, sources):
        return (
            self.registry.version(kind),
            tuple(source.stat() for source in sources if isinstance(source, FileSource) and source.compile),
        )

    def _collect(self, kind):
        sources = self.registry.get_sources(kind)
        key = self._memo_key(kind, sources)
        memo = self._memo.get(kind)
        if memo is not None and memo[0] == key:
            return list(memo[1]), list(memo[2])

        urls = []
        bundles = []
        for compilable, run in groupby(sources, key=lambda source: source.compilable):
            if compilable:
                bundle = self._bundle(kind, list(run))
                bundles.append(bundle)
                urls.append(bundle.url)
            else:
                urls.extend(source.url for source in run)

        self._memo[kind] = (key, tuple(urls), tuple(bundles))
        return urls, bundles

    def _bundle(self, kind, sources):
        chain = self.chain(kind)
        signatures = self.cache.signatures(sources)
        fingerprint = self.cache.fingerprint(chain.identity, [s.digest for s in signatures])

        while True:
            bundle = self.cache.get(fingerprint, kind)
            if bundle is not None:
                log.debug('Cache hit for %s bundle %s', kind, fingerprint)
                return bundle

            with self.cache.lock(fingerprint):
                bundle = self.cache.get(fingerprint, kind)
                if bundle is not None:
                    return bundle

                # Compile from exactly the bytes that are fingerprinted
                contents = [source.read() for source in sources]
                signatures = [Struct(s, digest=digest(content)) for s, content in zip(signatures, contents)]
                actual = self.cache.fingerprint(chain.identity, [s.digest for s in signatures])
                if actual == fingerprint:
                    return self._compile(kind, chain, fingerprint, sources, contents, signatures)

            # Start over under the lock of what the sources hold now
            log.debug('Sources of %s bundle %s changed while building, now %s', kind, fingerprint, actual)
            fingerprint = actual

    def _compile(self, kind, chain, fingerprint, sources, contents, signatures):
        log.debug('Cache miss for %s bundle %s', kind, fingerprint)
        data = chain.compile(sources, contents=contents)

        try:
            bundle = self.cache.put(fingerprint, kind, data, chain.identity, signatures)
        except CacheWriteError as e:
            log.warning('%s. Serving the %s bundle inline without caching it.', e, kind)
            return CompiledBundle(
                fingerprint=fingerprint,
                kind=kind,
                url=data_url(kind, data, self.config.charset),
                path=None,
                sources=tuple(signatures),
                chain=chain.identity,
                compiled_at=timezone.now().isoformat(),
            )

        log.info('Compiled %s bundle %s from %d source(s)', kind, bundle.url, len(sources))
        return bundle
