class AssetCollectorException(Exception):
    pass


class SourceNotFound(AssetCollectorException):
    def __init__(self, path, reason=None):
        self.path = path
        self.reason = reason
        message = f'Asset source {path} does not exist or is not readable'
        if reason:
            message += f' ({reason})'
        super().__init__(message)


class UnsupportedSourceType(AssetCollectorException):
    pass


class CompileError(AssetCollectorException):
    """
    Raised when a stage rejects its input. Nothing is written to the cache when this is raised,
    so the next access after fixing the stage or the sources compiles again.
    """

    def __init__(self, *, stage, source, cause):
        self.stage = stage
        self.source = source
        self.cause = cause
        super().__init__(f'Stage {stage} failed compiling {source}: {type(cause).__name__}: {cause}')


class CacheWriteError(AssetCollectorException):
    def __init__(self, path, cause):
        self.path = path
        self.cause = cause
        super().__init__(f'Could not write compiled bundle to {path}: {cause}')
