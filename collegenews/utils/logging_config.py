import logging
import sys

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s [%(name)s] %(message)s"
DATE_FORMAT = "%H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """Um único handler de console para o pacote inteiro."""
    root = logging.getLogger("collegenews")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # evita handlers duplicados quando o uvicorn recarrega o módulo
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)

    # apscheduler é verboso em INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
