import logging

from storefront.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = None):
    logging.basicConfig(level=(level or settings.log_level).upper(), format=LOG_FORMAT)
    # SQL echo is too chatty at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
