"""Process entry point: `uvicorn dating_api.main:app`."""
from dating_api.app import create_app
from dating_api.core.config import get_settings
from dating_api.core.logging_config import configure_logging

settings = get_settings()
configure_logging(settings.log_level)
app = create_app(settings)

__all__ = ["app", "create_app"]
