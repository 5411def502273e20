from __future__ import annotations

import uvicorn

from notekeeper.api.main import create_app
from notekeeper.config import Config
from notekeeper.context import AppContext


def run() -> None:
    config = Config()
    app = create_app(AppContext(config))
    uvicorn.run(app, host=config.api_host, port=config.api_port, log_level="info")


if __name__ == "__main__":
    run()
