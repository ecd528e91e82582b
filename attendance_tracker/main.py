import uvicorn

from . import create_app
from .core.config import get_settings
from .core.logging import configure_logging

settings = get_settings()
configure_logging(settings.LOG_LEVEL)
app = create_app(settings)


def run() -> None:
    # log_config=None keeps the JSON handler installed above.
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    run()
