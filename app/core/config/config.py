from app.core.config.settings_pydantic import PydanticSettings as Settings

settings = Settings()
