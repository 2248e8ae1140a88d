"""
Runtime settings, read from the environment (and .env via python-dotenv).

    HUGGINGFACE_API_KEY     bearer token for the feature-extraction endpoint
    EMBEDDING_API_URL       feature-extraction endpoint
    EMBEDDING_DIM           expected vector length (512 for distiluse)
    EMBEDDING_TIMEOUT       seconds to wait for a cold model
    EXPLANATION_MODEL       OpenAI chat model used for overlap explanations
    EXPLANATION_CACHE_SIZE  max cached explanations (LRU)
    DATA_DIR                directory holding courses.json / metadata.json

OPENAI_API_KEY is read by the OpenAI client itself.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

ROOT_DIR = Path(__file__).parent.parent

MODEL_NAME = "sentence-transformers/distiluse-base-multilingual-cased-v2"
EMBEDDING_API_URL = (
    "https://api-inference.huggingface.co/pipeline/feature-extraction/" + MODEL_NAME
)
EMBEDDING_DIM = 512
EMBEDDING_TIMEOUT = 60.0
EXPLANATION_MODEL = "gpt-3.5-turbo-0125"
EXPLANATION_CACHE_SIZE = 256


@dataclass(frozen=True)
class Settings:
    huggingface_api_key: str | None = None
    embedding_api_url: str = EMBEDDING_API_URL
    embedding_dim: int = EMBEDDING_DIM
    embedding_timeout: float = EMBEDDING_TIMEOUT
    explanation_model: str = EXPLANATION_MODEL
    explanation_cache_size: int = EXPLANATION_CACHE_SIZE
    data_dir: Path = ROOT_DIR / "data"

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        return cls(
            huggingface_api_key=env.get("HUGGINGFACE_API_KEY") or None,
            embedding_api_url=env.get("EMBEDDING_API_URL", EMBEDDING_API_URL),
            embedding_dim=int(env.get("EMBEDDING_DIM", EMBEDDING_DIM)),
            embedding_timeout=float(env.get("EMBEDDING_TIMEOUT", EMBEDDING_TIMEOUT)),
            explanation_model=env.get("EXPLANATION_MODEL", EXPLANATION_MODEL),
            explanation_cache_size=int(env.get("EXPLANATION_CACHE_SIZE", EXPLANATION_CACHE_SIZE)),
            data_dir=Path(env.get("DATA_DIR", ROOT_DIR / "data")),
        )
