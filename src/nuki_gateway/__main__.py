from __future__ import annotations

import logging
import os

import uvicorn


def main() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("nuki_gateway.app:app", host="0.0.0.0", port=port, reload=False)


if __name__ == "__main__":
    main()
