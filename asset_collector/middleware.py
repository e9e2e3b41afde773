from asset_collector.collector import AssetsCollector
from asset_collector.config import AssetsConfig


class Middleware:
    """
    Gives every request its own collector as `request.assets`. The configuration is read from the
    settings once, when the middleware is created.
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.config = AssetsConfig.from_settings()

    def __call__(self, request):
        request.assets = AssetsCollector(config=self.config)
        return self.get_response(request)
