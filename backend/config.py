"""
Конфігурація Родового дерева
============================
Всі налаштування читаються зі змінних середовища (.env підтримується).

Змінні:
- STORE_BACKEND: memory | neo4j
- NEO4J_URI, NEO4J_USER, NEO4J_PASSWORD
- MAX_RELATION_TRAVERSAL_DEPTH: стеля BFS для кровної спорідненості
- FRONTEND_URL: база для посилань-запрошень
- INVITATION_TTL_DAYS: термін дії запрошення
- LOG_LEVEL
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


DEFAULT_MAX_RELATION_TRAVERSAL_DEPTH = 10


@dataclass
class Settings:
    store_backend: str = "memory"
    neo4j_uri: str = "bolt://127.0.0.1:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = "rodovid123"
    max_relation_depth: int = DEFAULT_MAX_RELATION_TRAVERSAL_DEPTH
    frontend_url: str = "http://localhost:3000"
    invitation_ttl_days: int = 7
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Зібрати налаштування з оточення"""
        load_dotenv()  # не перезаписує вже встановлені змінні
        return cls(
            store_backend=os.getenv("STORE_BACKEND", "memory").lower(),
            neo4j_uri=os.getenv("NEO4J_URI", "bolt://127.0.0.1:7687"),
            neo4j_user=os.getenv("NEO4J_USER", "neo4j"),
            neo4j_password=os.getenv("NEO4J_PASSWORD", "rodovid123"),
            max_relation_depth=int(
                os.getenv("MAX_RELATION_TRAVERSAL_DEPTH", DEFAULT_MAX_RELATION_TRAVERSAL_DEPTH)
            ),
            frontend_url=os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/"),
            invitation_ttl_days=int(os.getenv("INVITATION_TTL_DAYS", 7)),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Отримати налаштування (кешуються на процес)"""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Скинути кеш (для тестів)"""
    global _settings
    _settings = None
