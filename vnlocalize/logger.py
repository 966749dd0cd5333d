import logging
from pathlib import Path

LOG_DIR = Path(__file__).parent.parent / "logs"
LOG_FILE = LOG_DIR / "app.log"

LOG_MODES = ("off", "info", "debug")

_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Log mode applied to loggers created by get_logger(); set by configure_logging()
_log_mode = "off"


def _level_for(log_mode: str) -> int:
    if log_mode == 'debug':
        return logging.DEBUG
    if log_mode == 'off':
        # Higher than CRITICAL disables everything
        return logging.CRITICAL + 1
    return logging.INFO


def _apply_mode(logger: logging.Logger, log_mode: str):
    """Bring a logger's level and handlers in line with the given log mode."""
    level = _level_for(log_mode)
    logger.setLevel(level)

    log_format = logging.Formatter(_LOG_FORMAT)
    has_file_handler = any(isinstance(h, logging.FileHandler) for h in logger.handlers)
    has_console_handler = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in logger.handlers
    )

    if log_mode != 'off' and not has_file_handler:
        LOG_DIR.mkdir(exist_ok=True)
        f_handler = logging.FileHandler(LOG_FILE, encoding='utf-8')
        f_handler.setLevel(logging.DEBUG)
        f_handler.setFormatter(log_format)
        logger.addHandler(f_handler)
    elif log_mode == 'off' and has_file_handler:
        handlers_to_remove = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
        for handler in handlers_to_remove:
            handler.close()
            logger.removeHandler(handler)

    if not has_console_handler:
        c_handler = logging.StreamHandler()
        c_handler.setFormatter(log_format)
        logger.addHandler(c_handler)

    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setLevel(level)


def configure_logging(log_mode: str):
    """Set the log mode and update every logger created by get_logger()."""
    global _log_mode
    _log_mode = log_mode if log_mode in LOG_MODES else "info"

    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        if not logger_name.startswith("vnlocalize"):
            continue
        logger = logging.getLogger(logger_name)
        if logger.handlers:
            _apply_mode(logger, _log_mode)


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    _apply_mode(logger, _log_mode)
    return logger
