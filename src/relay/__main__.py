import logging
import os

import uvicorn

from .server import create_app


def main() -> None:
    level_name = os.environ.get("RELAY_LOG_LEVEL", "INFO").strip().upper() or "INFO"
    logging.basicConfig(
        level=level_name,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    host = os.environ.get("RELAY_HOST", "0.0.0.0")
    port = int(os.environ.get("RELAY_PORT", "8788"))
    uvicorn.run(create_app(), host=host, port=port, log_level=level_name.lower())


if __name__ == "__main__":
    main()
