import uvicorn

from slidefox.api import create_app
from slidefox.settings import get_config, setup_logging


def main():
    config = get_config()
    setup_logging(config.server.log_level)
    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port, log_level="info")


if __name__ == "__main__":
    main()
