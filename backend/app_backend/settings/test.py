import os

from .settings import *  # noqa: F401,F403

DEBUG = False

# SQLite in memory by default. Set DB_ENGINE=django.db.backends.postgresql
# (plus DB_NAME, DB_USER, ...) to also run the row-lock race tests.
if os.getenv("DB_ENGINE", "").endswith("postgresql"):
    DATABASES["default"]["TEST"] = {"NAME": os.getenv("DB_TEST_NAME", "test_dispatch")}  # noqa: F405
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": ":memory:",
        }
    }

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = False
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {"null": {"class": "logging.NullHandler"}},
    "root": {"handlers": ["null"], "level": "CRITICAL"},
}
