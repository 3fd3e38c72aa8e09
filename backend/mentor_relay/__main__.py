from __future__ import annotations

import uvicorn

from mentor_relay.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run("mentor_relay.main:app", host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
