from .config import DatabaseConfig, load_environment, resolve_migrations_dir

__all__ = ['DatabaseConfig', 'load_environment', 'resolve_migrations_dir']
