"""shopauth entrypoint.

Run with:
  python -m shopauth
"""

import os
import uvicorn

from shopauth.settings import configure_logging


def main() -> None:
    configure_logging(os.getenv("SHOPAUTH_LOG_LEVEL", "INFO"))
    host = os.getenv("SHOPAUTH_HOST", "0.0.0.0")
    port = int(os.getenv("SHOPAUTH_PORT", "8000"))
    reload = os.getenv("SHOPAUTH_RELOAD", "false").lower() in {"1", "true", "yes", "y"}
    uvicorn.run("shopauth.app:app", host=host, port=port, reload=reload)

if __name__ == "__main__":
    main()
