import os

from asset_collector import (
    AssetsCollector,
    AssetsConfig,
    Stage,
)
from asset_collector.cache import FingerprintCache


def write(path, content, mtime_ns=None):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    mode = 'wb' if isinstance(content, bytes) else 'w'
    with open(path, mode) as f:
        f.write(content)
    if mtime_ns is not None:
        os.utime(path, ns=(mtime_ns, mtime_ns))
    return path


def read(path):
    with open(path, 'rb') as f:
        return f.read()


def make_config(tmp_path, **kwargs):
    return AssetsConfig.build(
        **{
            'source_root': tmp_path / 'src',
            'output_dir': tmp_path / 'out',
            'output_url': '/bundles/',
            'source_url': '/static/',
            'stages': dict(css=[], js=[]),
            **kwargs,
        }
    )


def make_collector(tmp_path, cache=None, **kwargs):
    config = make_config(tmp_path, **kwargs)
    if cache is None:
        cache = FingerprintCache(output_dir=config.output_dir, output_url=config.output_url)
    return AssetsCollector(config=config, cache=cache)


def bundle_files(tmp_path):
    out = tmp_path / 'out'
    if not out.exists():
        return []
    return sorted(x.name for x in out.iterdir() if not x.name.startswith('.'))


class CountingStage(Stage):
    """Identity stage that counts how often it runs. Can be told to fail."""

    name = 'counting'

    def __init__(self, kind=None, charset='utf-8', broken=False):
        super().__init__(kind=kind, charset=charset)
        self.calls = 0
        self.broken = broken

    def transform(self, data):
        self.calls += 1
        if self.broken:
            raise ValueError('unexpected token')
        return data


class UpperStage(Stage):
    name = 'upper'

    def transform(self, data):
        return data.upper()


def reverse_transform(data):
    return data[::-1]


def text_transform(data):
    return data.decode()


class LowerStage(Stage):
    # Shares its name with UpperStage
    name = 'upper'

    def transform(self, data):
        return data.lower()


class UnnamedStage(Stage):
    def transform(self, data):
        return data
