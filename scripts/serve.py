import logging

import uvicorn

from pageguide.config import settings


def main():
    logging.basicConfig(level=settings.log_level)
    uvicorn.run("pageguide.server.api:app", host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
