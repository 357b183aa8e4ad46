import logging
from typing import Callable, List, Tuple

from seachart_tiles.interfaces.tile_server import INotifier


logger = logging.getLogger(__name__)


class LoggingNotifier(INotifier):
    """Default notifier: writes notifications to the log"""

    def notify(self, title: str, body: str) -> None:
        logger.info("%s: %s", title, body)


class CallbackNotifier(INotifier):
    """Forwards notifications to a callable supplied by the display layer"""

    def __init__(self, callback: Callable[[str, str], None]):
        self.callback = callback
        self.sent: List[Tuple[str, str]] = []

    def notify(self, title: str, body: str) -> None:
        self.sent.append((title, body))
        try:
            self.callback(title, body)
        except Exception as e:
            logger.warning("Failed to send notification: %s", e)
