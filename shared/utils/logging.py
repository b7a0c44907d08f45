import logging

_DEFAULT_LEVEL = logging.INFO


def setup_logger(name: str = "trading", level: int | None = None) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(_DEFAULT_LEVEL if level is None else level)
    # 控制台 handler（同名 logger 只挂一次）
    if not logger.handlers:
        ch = logging.StreamHandler()
        fmt = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
        )
        ch.setFormatter(fmt)
        logger.addHandler(ch)
    return logger


def set_level(level: str | int) -> None:
    """统一调整日志级别（来自配置 logging.level），已创建与之后创建的 logger 都生效。"""
    global _DEFAULT_LEVEL
    lvl = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(lvl, int):
        raise ValueError(f"Unknown log level: {level}")
    _DEFAULT_LEVEL = lvl
    for logger in logging.Logger.manager.loggerDict.values():
        if isinstance(logger, logging.Logger) and logger.handlers:
            logger.setLevel(lvl)
