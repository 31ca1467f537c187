import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

DEEPSEEK_BASE_URL = "https://api.deepseek.com/v1"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


@dataclass(frozen=True)
class OracleConfig:
    """Connection settings for one OpenAI-compatible chat endpoint."""
    name: str
    api_key: Optional[str]
    base_url: str
    model: str
    temperature: float = 0.3
    max_tokens: Optional[int] = None
    timeout: float = 30.0

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class ScoringConfig:
    writing: OracleConfig
    speaking: OracleConfig
    questions: OracleConfig

    @classmethod
    def from_env(cls) -> "ScoringConfig":
        """Build oracle settings from environment variables (and .env)."""
        load_dotenv()
        timeout = float(os.getenv('ORACLE_TIMEOUT', '30'))

        deepseek = OracleConfig(
            name='deepseek',
            api_key=os.getenv('DEEPSEEK_API_KEY'),
            base_url=os.getenv('DEEPSEEK_BASE_URL', DEEPSEEK_BASE_URL),
            model=os.getenv('DEEPSEEK_MODEL', 'deepseek-chat'),
            temperature=0.3,
            timeout=timeout,
        )
        gemini = OracleConfig(
            name='gemini',
            api_key=os.getenv('GEMINI_API_KEY'),
            base_url=os.getenv('GEMINI_BASE_URL', GEMINI_BASE_URL),
            model=os.getenv('GEMINI_MODEL', 'gemini-3-flash-preview'),
            temperature=0.3,
            max_tokens=300,
            timeout=timeout,
        )
        return cls(writing=deepseek, speaking=gemini, questions=gemini)


@dataclass(frozen=True)
class DatabaseConfig:
    host: str = 'localhost'
    user: str = 'root'
    password: str = field(default='', repr=False)
    database: str = 'ielts_platform'
    pool_name: str = 'ielts_pool'
    pool_size: int = 5

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        load_dotenv()
        return cls(
            host=os.getenv('DB_HOST', 'localhost'),
            user=os.getenv('DB_USER', 'root'),
            password=os.getenv('DB_PASSWORD', ''),
            database=os.getenv('DB_NAME', 'ielts_platform'),
            pool_size=int(os.getenv('DB_POOL_SIZE', '5')),
        )

    def pool_kwargs(self) -> dict:
        return {
            'host': self.host,
            'user': self.user,
            'password': self.password,
            'database': self.database,
            'pool_name': self.pool_name,
            'pool_size': self.pool_size,
        }
