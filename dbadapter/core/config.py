"""
Configuration Management

Centralized configuration using Pydantic Settings.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Adapter settings, read from the environment or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Connection
    sqlserver_server: Optional[str] = Field(default=None)
    sqlserver_database: str = Field(default="master")
    sqlserver_user: Optional[str] = Field(default=None)
    sqlserver_password: Optional[str] = Field(default=None)
    sqlserver_port: Optional[int] = Field(default=None)
    sqlserver_trust_server_certificate: bool = Field(default=True)

    # Driver selection
    sqlserver_driver: str = Field(default="auto")
    sqlserver_driver_version: str = Field(default="17")

    # Pooled backend
    sqlserver_pool_size: int = Field(default=5)
    sqlserver_connect_timeout: int = Field(default=30)

    # Logging
    log_level: str = Field(default="INFO")

    def connection_info(self, **overrides):
        """
        Build a SqlServerConnectionInfo from these settings.

        Keyword overrides that are None are ignored, so CLI options can be
        passed straight through.
        """
        from dbadapter.adapters.sqlserver_adapter import SqlServerConnectionInfo

        values = {
            "server": self.sqlserver_server,
            "database": self.sqlserver_database,
            "user": self.sqlserver_user,
            "password": self.sqlserver_password,
            "port": self.sqlserver_port,
            "trust_server_certificate": self.sqlserver_trust_server_certificate,
            "driver": self.sqlserver_driver,
            "driver_version": self.sqlserver_driver_version,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return SqlServerConnectionInfo.from_mapping(values)


# Global settings instance
settings = Settings()
