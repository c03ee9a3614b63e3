from django.apps import AppConfig


class GrabberConfig(AppConfig):
    name = 'grabber'
    verbose_name = 'Meme grabber'
    default_auto_field = 'django.db.models.BigAutoField'
