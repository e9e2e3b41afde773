import hashlib
import json
import logging
import os
import tempfile
import threading
from collections import OrderedDict
from contextlib import contextmanager

from django.core.files import locks
from django.core.files.move import file_move_safe
from django.utils import timezone

from asset_collector.config import DEFAULT_INDEX_NAME
from asset_collector.errors import CacheWriteError
from asset_collector.sources import FileSource
from asset_collector.struct import (
    FrozenStruct,
    Struct,
)

log = logging.getLogger('asset_collector')

INDEX_FORMAT = 1

# Compiled bundles kept in memory per cache, least recently used are dropped first
BUNDLE_MEMO_SIZE = 1024


def digest(data):
    return hashlib.sha256(data).hexdigest()


def _empty_index():
    return dict(format=INDEX_FORMAT, bundles={}, files={})


def _remove_if_exists(path):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


class CompiledBundle(FrozenStruct):
    """
    A published (or, when the cache could not be written, inlined) bundle:
    fingerprint, kind, url, path, sources, chain, compiled_at.
    """

    __slots__ = ()


class FingerprintCache:
    # language=rst
    """
    Content addressed store of compiled bundles. A bundle lives at `<output_dir>/<fingerprint>.<kind>`
    and is served from `<output_url><fingerprint>.<kind>`. Next to the bundles an index file records,
    per fingerprint, which sources went in and when it was compiled, and per file the last seen
    `(mtime_ns, size)` with its content digest. The latter lets an unchanged file be fingerprinted
    without reading it.

    Entries are never removed from here. A changed source gives a new fingerprint, and sweeping
    bundles that nothing refers to anymore is left to whoever deploys the output directory.
    """

    def __init__(self, *, output_dir, output_url, index_name=DEFAULT_INDEX_NAME, mtime_check=True):
        self.output_dir = output_dir
        self.output_url = output_url
        self.index_path = os.path.join(output_dir, index_name)
        self.mtime_check = mtime_check

        self._state_lock = threading.RLock()
        self._fingerprint_locks = {}
        self._bundles = OrderedDict()
        self._index = None
        self._index_stamp = None

    @classmethod
    def for_config(cls, config):
        """Return the cache shared by every collector in this process writing to the same place."""
        key = (config.output_dir, config.output_url, config.index_name, config.mtime_check)
        with _caches_lock:
            try:
                return _caches[key]
            except KeyError:
                cache = _caches[key] = cls(
                    output_dir=config.output_dir,
                    output_url=config.output_url,
                    index_name=config.index_name,
                    mtime_check=config.mtime_check,
                )
                return cache

    def bundle_path(self, fingerprint, kind):
        return os.path.join(self.output_dir, f'{fingerprint}.{kind}')

    def bundle_url(self, fingerprint, kind):
        return f'{self.output_url}{fingerprint}.{kind}'

    # Index

    def _index_file_stamp(self):
        try:
            st = os.stat(self.index_path)
        except OSError:
            return None
        return st.st_mtime_ns, st.st_size

    def _read_index_file(self):
        try:
            with open(self.index_path, encoding='utf-8') as f:
                index = json.load(f)
        except FileNotFoundError:
            return _empty_index()
        except (OSError, ValueError) as e:
            log.warning('Ignoring unreadable asset index %s: %s', self.index_path, e)
            return _empty_index()

        if not isinstance(index, dict) or index.get('format') != INDEX_FORMAT:
            log.warning('Ignoring asset index %s with an unknown format', self.index_path)
            return _empty_index()

        index.setdefault('bundles', {})
        index.setdefault('files', {})
        return index

    @property
    def index(self):
        with self._state_lock:
            stamp = self._index_file_stamp()
            if self._index is None or stamp != self._index_stamp:
                self._index = self._read_index_file()
                self._index_stamp = stamp
            return self._index

    def _update_index(self, fingerprint, meta):
        with open(self.index_path + '.lock', 'a') as lock_file:
            locks.lock(lock_file, locks.LOCK_EX)
            try:
                # Re-read under the lock, other processes may have published since we last looked
                index = self._read_index_file()
                index['bundles'][fingerprint] = meta
                for signature in meta['sources']:
                    if signature['mtime_ns'] is not None:
                        index['files'][signature['identity']] = dict(
                            mtime_ns=signature['mtime_ns'],
                            size=signature['size'],
                            digest=signature['digest'],
                        )

                fd, tmp_path = tempfile.mkstemp(dir=self.output_dir, prefix='.index.', suffix='.tmp')
                try:
                    with os.fdopen(fd, 'w', encoding='utf-8') as f:
                        json.dump(index, f, indent=1, sort_keys=True)
                        f.flush()
                        os.fsync(f.fileno())
                    os.replace(tmp_path, self.index_path)
                finally:
                    _remove_if_exists(tmp_path)
            finally:
                locks.unlock(lock_file)

        with self._state_lock:
            self._index = index
            self._index_stamp = self._index_file_stamp()

    # Fingerprints

    def signature(self, source):
        """
        Content digest of a source, plus `(mtime_ns, size)` for files. An unchanged file is not read
        when the index already knows its digest.
        """
        if isinstance(source, FileSource):
            mtime_ns, size = source.stat()
            if self.mtime_check:
                known = self.index['files'].get(source.path)
                if known and known.get('mtime_ns') == mtime_ns and known.get('size') == size:
                    log.debug('Reusing the recorded digest of unchanged %s', source.path)
                    return Struct(identity=source.identity, digest=known['digest'], mtime_ns=mtime_ns, size=size)
            return Struct(identity=source.identity, digest=digest(source.read()), mtime_ns=mtime_ns, size=size)

        data = source.read()
        return Struct(identity=source.identity, digest=digest(data), mtime_ns=None, size=len(data))

    def signatures(self, sources):
        return [self.signature(source) for source in sources]

    @staticmethod
    def fingerprint(chain_identity, digests):
        # Only content goes in, so identical content at different paths shares a bundle
        h = hashlib.sha256()
        for d in digests:
            h.update(d.encode('ascii'))
            h.update(b'\n')
        h.update(chain_identity.encode('utf-8'))
        return h.hexdigest()

    # Bundles

    @contextmanager
    def lock(self, fingerprint):
        # Entries are [lock, number of threads holding or waiting for it], dropped when unused
        with self._state_lock:
            entry = self._fingerprint_locks.setdefault(fingerprint, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._state_lock:
                entry[1] -= 1
                if not entry[1]:
                    del self._fingerprint_locks[fingerprint]

    def _remember(self, bundle):
        key = (bundle.fingerprint, bundle.kind)
        with self._state_lock:
            self._bundles[key] = bundle
            self._bundles.move_to_end(key)
            while len(self._bundles) > BUNDLE_MEMO_SIZE:
                self._bundles.popitem(last=False)

    def get(self, fingerprint, kind):
        path = self.bundle_path(fingerprint, kind)
        if not os.path.isfile(path):
            with self._state_lock:
                self._bundles.pop((fingerprint, kind), None)
            return None

        with self._state_lock:
            try:
                bundle = self._bundles[(fingerprint, kind)]
            except KeyError:
                pass
            else:
                self._bundles.move_to_end((fingerprint, kind))
                return bundle

        meta = self.index['bundles'].get(fingerprint, {})
        bundle = CompiledBundle(
            fingerprint=fingerprint,
            kind=kind,
            url=self.bundle_url(fingerprint, kind),
            path=path,
            sources=tuple(Struct(x) for x in meta.get('sources', ())),
            chain=meta.get('chain'),
            compiled_at=meta.get('compiled_at'),
        )
        self._remember(bundle)
        return bundle

    def put(self, fingerprint, kind, data, chain_identity, signatures):
        path = self.bundle_path(fingerprint, kind)
        try:
            os.makedirs(self.output_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.output_dir, prefix=f'.{fingerprint}.', suffix='.tmp')
            try:
                with os.fdopen(fd, 'wb') as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                os.chmod(tmp_path, 0o644)
                try:
                    file_move_safe(tmp_path, path, allow_overwrite=False)
                except FileExistsError:
                    # Same fingerprint means same bytes, the first one published stays
                    log.debug('Bundle %s was already published by another writer', path)
            finally:
                _remove_if_exists(tmp_path)
        except OSError as e:
            raise CacheWriteError(path, e) from e

        meta = dict(
            kind=kind,
            chain=chain_identity,
            compiled_at=timezone.now().isoformat(),
            sources=[dict(s) for s in signatures],
        )
        try:
            self._update_index(fingerprint, meta)
        except OSError as e:
            log.warning('Could not update the asset index %s: %s', self.index_path, e)

        bundle = CompiledBundle(
            fingerprint=fingerprint,
            kind=kind,
            url=self.bundle_url(fingerprint, kind),
            path=path,
            sources=tuple(Struct(x) for x in meta['sources']),
            chain=chain_identity,
            compiled_at=meta['compiled_at'],
        )
        self._remember(bundle)
        return bundle

    def __repr__(self):
        return f'<FingerprintCache: {self.output_dir}>'


_caches = {}
_caches_lock = threading.Lock()
