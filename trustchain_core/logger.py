import logging, json, sys, time, os


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record: ts, level, name, msg (+ exc when present)."""

    converter = time.gmtime  # UTC timestamps

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%SZ")

    def format(self, record):
        line = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            line["exc"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False)


def get_logger(name="trustchain", level=None, to_file=None):
    """
    Structured logger shared by all trustchain components.

    Level defaults to TRUSTCHAIN_LOG_LEVEL (INFO when unset); a log file can
    be added with ``to_file`` or TRUSTCHAIN_LOG_FILE. Handlers attach once,
    to the first logger asked for under a given name.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level or os.getenv("TRUSTCHAIN_LOG_LEVEL", "INFO").upper())

    if not logger.handlers:
        formatter = JsonLineFormatter()
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        to_file = to_file or os.getenv("TRUSTCHAIN_LOG_FILE")
        if to_file:
            os.makedirs(os.path.dirname(to_file) or ".", exist_ok=True)
            file_handler = logging.FileHandler(to_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
