"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Merged artifacts
    storage_dir: str = "/storage/output"

    # Job identity
    columbus_username: str = ""
    job_name_prefix: str = "profilefunc"
    callback_url_template: str = "http://profiler-{username}/"
    worker_token_env: str = "COLUMBUS_ACCESS_TOKEN"

    # Orchestrator (Kubernetes)
    orchestrator_namespace: str = "default"
    kube_in_cluster: bool = True
    worker_backoff_limit: int = 5
    watch_max_reconnects: int = 3
    watch_retry_base_delay: float = 1.0
    watch_timeout_seconds: int = 60
    watch_max_threads: int = 128

    # Storage service upload
    storage_upload_url: str = "http://cdrive/multi-part-form-upload/"
    upload_timeout_seconds: float = 10.0
    upload_max_attempts: int = 3
    upload_retry_base_delay: float = 0.5

    # Job processing
    job_retention_hours: int = 2

    compute_port: int = 8000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
