import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


class Settings:
    def __init__(self) -> None:
        base_dir = Path(__file__).resolve().parent.parent.parent
        self.APP_NAME: str = os.getenv("APP_NAME", "ObrasFlow")
        self.ENV: str = os.getenv("ENV", "development")
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

        self.LOCAL_STORE_DIR: str = os.getenv("LOCAL_STORE_DIR", (base_dir / "storage").as_posix())
        self.LOCAL_STORE_KEY: str = os.getenv("LOCAL_STORE_KEY", "obrasflow_database")

        self.REMOTE_DATABASE_URI: str | None = os.getenv("REMOTE_DATABASE_URI") or None
        self.PRIMARY_BACKEND: str = os.getenv("PRIMARY_BACKEND", "remote").strip().lower()
        if self.PRIMARY_BACKEND not in {"remote", "local"}:
            raise ValueError("PRIMARY_BACKEND deve ser 'remote' ou 'local'.")

        self.FERRAMENTAS_CACHE_SECONDS: int = int(os.getenv("FERRAMENTAS_CACHE_SECONDS", "300"))

        self.BOOTSTRAP_HOST_ID: str = os.getenv("BOOTSTRAP_HOST_ID", "host-fernando")
        self.BOOTSTRAP_HOST_NAME: str = os.getenv("BOOTSTRAP_HOST_NAME", "Fernando Antunes")
        self.BOOTSTRAP_HOST_EMAIL: str = os.getenv("BOOTSTRAP_HOST_EMAIL", "fernando@pratica.eng.br")
        self.BOOTSTRAP_HOST_CNPJ: str = os.getenv("BOOTSTRAP_HOST_CNPJ", "12345678000190")
        self.BOOTSTRAP_HOST_PASSWORD: str = os.getenv("BOOTSTRAP_HOST_PASSWORD", "senha123")


@lru_cache
def get_settings() -> Settings:
    return Settings()
