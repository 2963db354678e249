from django.apps import AppConfig


class MultisigConfig(AppConfig):
    name = 'multisig'
    default_auto_field = 'django.db.models.AutoField'

    def ready(self):
        import multisig.signals
