import logging, json, sys, time, os

REDACTED = "[redacted]"

# `extra` keys that may never reach a handler in clear
SECRET_FIELDS = frozenset({
    "password",
    "passphrase",
    "derived_key",
    "private_key",
    "private_key_der",
    "wrap_key",
    "envelope",
})


class SecretFieldFilter(logging.Filter):
    """Masks secret-bearing `extra` fields on every record the logger emits."""

    def filter(self, record: logging.LogRecord) -> bool:
        for field in SECRET_FIELDS.intersection(record.__dict__):
            setattr(record, field, REDACTED)
        return True


def get_logger(name="sigvault", level=None, to_file=None):
    """Unified structured logger for all SigVault components."""
    logger = logging.getLogger(name)
    if level is None:
        level = os.getenv("SIGVAULT_LOG_LEVEL", "INFO").upper()
    logger.setLevel(level)

    # logger-level filter: records are masked before they propagate
    if not any(isinstance(f, SecretFieldFilter) for f in logger.filters):
        logger.addFilter(SecretFieldFilter())

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            fmt=json.dumps({
                "ts": "%(asctime)s",
                "level": "%(levelname)s",
                "name": "%(name)s",
                "msg": "%(message)s"
            }),
            datefmt="%Y-%m-%dT%H:%M:%SZ",
        )
        formatter.converter = time.gmtime  # Use UTC timestamps
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        if to_file:
            # Ensure the directory exists before writing
            os.makedirs(os.path.dirname(to_file) or ".", exist_ok=True)
            file_handler = logging.FileHandler(to_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
