"""
Run the Auth API with uvicorn: python -m authapi
"""

import uvicorn

from authapi.config import get_settings


def main():
    settings = get_settings()
    uvicorn.run(
        "authapi.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=not settings.is_production,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
