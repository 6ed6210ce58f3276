"""Run the API with uvicorn: ``python -m simtrack_api``."""
import uvicorn

from .settings import settings


def main() -> None:
    uvicorn.run("simtrack_api.main:app", host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
