from mediastack.logger import get_logger


logger = get_logger()


def section(msg, *args):
    logger.info(msg, *args, extra={"status": "section"})


def ok(msg, *args):
    logger.info(msg, *args, extra={"status": "ok"})


def warn(msg, *args):
    logger.warning(msg, *args, extra={"status": "warn"})


def fail(msg, *args):
    logger.error(msg, *args, extra={"status": "fail"})


def skip(msg, *args):
    logger.info(msg, *args, extra={"status": "skip"})
