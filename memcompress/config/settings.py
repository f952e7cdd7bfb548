from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):

    memory_dir: str = "~/.claude/memory"
    store_path: str = "./.memcompress"

    llm_base_url: str = "http://localhost:11434/v1"
    llm_model: str = "qwen2.5:7b"
    llm_api_key: str = "ollama"
    llm_max_tokens: int = 1024
    llm_temperature: float = 0.1
    llm_timeout: float = 60.0

    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_batch_size: int = 16

    # Compression
    dedup_threshold: float = 0.92
    min_clusters: int = 2
    max_clusters: int = 10
    kmeans_max_iter: int = 50
    cluster_seed: Optional[int] = None
    summary_input_chars: int = 6000
    summary_strategy: Literal["sequential", "parallel"] = "sequential"
    summary_concurrency: int = 4
    structured_summaries: bool = False

    # Vector index
    index_version: int = 1
    search_top_k: int = 20
    search_min_score: float = 0.2
    multi_search_top_k: int = 50
    multi_search_min_score: float = 0.25

    # Retrieval
    domain_top_n: int = 3
    redundancy_threshold: float = 0.78
    budget_strong_threshold: float = 0.6
    budget_strong: int = 5
    budget_medium_threshold: float = 0.45
    budget_medium: int = 8
    budget_weak: int = 12
    budget_no_knowledge: int = 15

    class Config:
        env_file = ".env"
        env_prefix = "MEMCOMPRESS_"
        extra = "ignore"


settings = Settings()
