"""Application configuration."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Compiler and runtime settings loaded from environment."""

    # Entity IR identity
    organization: str = "appget"
    namespace_root: str = "dev.appget"
    default_domain: str = "appget"

    # Explicit domain overrides, keyed by lower-case table/view name
    table_domains: dict[str, str] = {}
    view_domains: dict[str, str] = {}

    # Paths
    schema_path: str = "schema.sql"
    views_path: str = "views.sql"
    models_path: str = "models.yaml"
    features_dir: str = "features"
    metadata_path: str = "metadata.yaml"
    specs_path: str = "specs.yaml"

    # Unresolvable view columns fail compilation instead of degrading to string
    strict_views: bool = False

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="SPECFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    def namespace_for(self, domain: str) -> str:
        """Namespace of a domain: the root for the organization domain, nested otherwise."""
        if domain == self.organization:
            return self.namespace_root
        return f"{self.namespace_root}.{domain}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
