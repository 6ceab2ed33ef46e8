import logging

import notifiers.logging

from herald.config import Settings

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s - %(message)s"


def get_log_handlers(logger: logging.Logger, settings: Settings):
    if settings.telegram_token is None:
        return []
    handler = notifiers.logging.NotificationHandler(
        "telegram",
        defaults={
            "token": settings.telegram_token,
            "chat_id": settings.telegram_chat_id,
        },
    )
    handler.setLevel(logging.WARNING)
    logger.addHandler(handler)
    return [handler]


def setup_logging(settings: Settings) -> logging.Logger:
    logging.basicConfig(format=LOG_FORMAT, level=logging.INFO)
    logger = logging.getLogger("herald")
    logging.getLogger().setLevel(settings.log_level)
    logger.setLevel(settings.log_level)
    get_log_handlers(logger, settings)
    return logger
