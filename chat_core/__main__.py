"""启动 HTTP 服务：python -m chat_core"""

import uvicorn

from chat_core.config.settings import settings


def main() -> None:
    uvicorn.run("chat_core.api.app:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
