"""
DebugConsole - routes loader diagnostics to the "classic" logger
"""
import logging

logger = logging.getLogger("classic")


class DebugConsole:
    @staticmethod
    def log(message):
        """Verbose trace output"""
        logger.debug(message)

    @staticmethod
    def info(message):
        logger.info(message)

    @staticmethod
    def warn(message):
        logger.warning(message)

    @staticmethod
    def error(message):
        logger.error(message)

    @staticmethod
    def configure(verbose=False):
        """Attach a console handler for command line use"""
        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
            logger.addHandler(handler)
        logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
