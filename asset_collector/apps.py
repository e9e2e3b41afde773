from django.apps import AppConfig


class AssetCollectorConfig(AppConfig):
    name = 'asset_collector'
    verbose_name = 'Asset collector'
    default = True

    def ready(self):
        from django.conf import settings

        from asset_collector.compilers import validate_stages

        validate_stages(
            getattr(settings, 'ASSET_COLLECTOR_STAGES', None),
            charset=getattr(settings, 'ASSET_COLLECTOR_CHARSET', 'utf-8'),
        )
