"""Server settings, resolved once from the environment."""
import os
from dataclasses import dataclass


@dataclass
class Settings:
    mongo_url: str = 'mongodb://localhost:27017'
    database_name: str = 'chatchat'
    admin_password: str = 'admin123'
    host: str = '0.0.0.0'
    port: int = 3000
    public_dir: str = 'public'
    history_limit: int = 50
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ
        return cls(
            mongo_url=env.get('MONGODB_URI', cls.mongo_url),
            database_name=env.get('MONGODB_DB', cls.database_name),
            admin_password=env.get('ADMIN_PASSWORD', cls.admin_password),
            host=env.get('HOST', cls.host),
            port=int(env.get('PORT', cls.port)),
            public_dir=env.get('PUBLIC_DIR', cls.public_dir),
            history_limit=int(env.get('HISTORY_LIMIT', cls.history_limit)),
            log_level=env.get('LOG_LEVEL', cls.log_level).upper(),
        )
