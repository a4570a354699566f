"""Rich-handler logging preset."""
import logging
from rich.logging import RichHandler
from .app_config import settings

def configure():
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s │ %(name)-38s │ %(levelname)-8s │ %(message)s",
        datefmt="%H:%M:%S",
        # property values are logged verbatim, brackets must not be parsed as markup
        handlers=[RichHandler(rich_tracebacks=True, markup=False)],
    )
    # aiohttp access log is noisy at DEBUG
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
