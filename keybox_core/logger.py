import logging, json, sys, time, os

ROOT_NAME = "Keybox"


class ComponentFilter(logging.Filter):
    """Tag each record with the vault component it came from ("Keybox.Sync" -> "sync")."""

    def filter(self, record):
        name = record.name
        if name.startswith(ROOT_NAME + "."):
            name = name[len(ROOT_NAME) + 1:]
        elif name.lower() == ROOT_NAME.lower():
            name = "core"
        record.component = name.lower()
        return True


def get_logger(name="keybox", level=None, to_file=None):
    """Unified structured logger for all Keybox components."""
    logger = logging.getLogger(name)
    if level is None:
        level = os.getenv("KEYBOX_LOG_LEVEL", "INFO").upper()
    logger.setLevel(level)
    to_file = to_file or os.getenv("KEYBOX_LOG_FILE")

    if not logger.handlers:
        formatter = logging.Formatter(
            fmt=json.dumps({
                "ts": "%(asctime)s",
                "level": "%(levelname)s",
                "component": "%(component)s",
                "name": "%(name)s",
                "msg": "%(message)s"
            }),
            datefmt="%Y-%m-%dT%H:%M:%SZ",
        )
        formatter.converter = time.gmtime
        handlers = [logging.StreamHandler(sys.stdout)]
        if to_file:
            os.makedirs(os.path.dirname(to_file) or ".", exist_ok=True)
            handlers.append(logging.FileHandler(to_file))
        for handler in handlers:
            handler.addFilter(ComponentFilter())
            handler.setFormatter(formatter)
            logger.addHandler(handler)

    return logger
