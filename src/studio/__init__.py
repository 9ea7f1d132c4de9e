# Studio package init
# --- studio-stream ---
import logging
import os


# --- studio-stream ---
def _configure_logging() -> None:
    level_name = (os.getenv("STUDIO_LOG_LEVEL") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logger = logging.getLogger("studio")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[STUDIO][%(levelname)s] %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(level)

    stream_level_name = (os.getenv("STUDIO_STREAM_LOG_LEVEL") or level_name).upper()
    stream_level = getattr(logging, stream_level_name, level)
    logging.getLogger("studio.stream").setLevel(stream_level)


# --- studio-stream ---
_configure_logging()
