import logging
import sys

FMT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def setup_logging(level: str = "INFO") -> None:
    # Clear any existing handlers (prevents duplicates with --reload)
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter(FMT))
    logging.basicConfig(level=level.upper(), handlers=[console])

    # route uvicorn through the same handler
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.setLevel(level.upper())
        uvicorn_logger.handlers = [console]
        uvicorn_logger.propagate = False
