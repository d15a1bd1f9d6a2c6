import logging
import os
import sys

import structlog
from flask import Flask

from watchvault import settings as app_settings
from watchvault.db import init_db
from watchvault.exceptions import register_exception_handlers
from watchvault.metrics import init_metrics
from watchvault.utils import ColoredFormatter

logger = structlog.get_logger('main')


def configure_logging(level=logging.INFO):
    formatter = ColoredFormatter(
        '[%(asctime)s.%(msecs)03d] %(levelname)s (%(module)s) %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler]
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if os.environ.get('LOG_FORMAT') == 'json' else structlog.dev.ConsoleRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def create_app(config=None):
    """Application factory

    `config` entries override the Flask config, e.g. SQLALCHEMY_DATABASE_URI for tests.
    """
    configure_logging()

    settings = app_settings.reload_conf()

    app = Flask(__name__)
    app.config["SQLALCHEMY_DATABASE_URI"] = settings["database"]["uri"]
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config["WATCHVAULT_SETTINGS"] = settings
    if config:
        app.config.update(config)

    register_exception_handlers(app)
    init_metrics(app)
    init_db(app)

    logger.info(f"WatchVault initialized (remote backend: {settings['remote']['backend']})")
    return app
