__version__ = '1.0.0'

from asset_collector.base import (
    CSS,
    JS,
    KINDS,
)
from asset_collector.cache import (
    CompiledBundle,
    FingerprintCache,
)
from asset_collector.collector import AssetsCollector
from asset_collector.compilers import (
    CallableStage,
    CompilerChain,
    Concatenator,
    Minifier,
    register_stage,
    SourceMapStripper,
    Stage,
)
from asset_collector.config import AssetsConfig
from asset_collector.errors import (
    AssetCollectorException,
    CacheWriteError,
    CompileError,
    SourceNotFound,
    UnsupportedSourceType,
)
from asset_collector.sources import (
    FileSource,
    InlineSource,
    SourceRegistry,
    UrlSource,
)

__all__ = [
    'AssetCollectorException',
    'AssetsCollector',
    'AssetsConfig',
    'CacheWriteError',
    'CallableStage',
    'CompiledBundle',
    'CompileError',
    'CompilerChain',
    'Concatenator',
    'CSS',
    'FileSource',
    'FingerprintCache',
    'InlineSource',
    'JS',
    'KINDS',
    'Minifier',
    'register_stage',
    'SourceMapStripper',
    'SourceNotFound',
    'SourceRegistry',
    'Stage',
    'UnsupportedSourceType',
    'UrlSource',
]
