from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenRouter (completion collaborator)
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "openai/gpt-4o-mini"
    openrouter_model: str = ""  # optional override for every completion call
    planner_temperature: float = 0.7
    synthesis_temperature: float = 0.7
    completion_timeout_seconds: float = 30.0
    completion_max_tokens: int = 1500
    completion_retry_attempts: int = 3
    completion_retry_base_delay: float = 1.0
    completion_retry_max_delay: float = 10.0

    # Search
    search_provider: str = "brave"  # brave | browser
    brave_api_key: str = ""
    search_results_per_query: int = 10
    search_delay_seconds: float = 1.0
    search_retry_attempts: int = 3
    browser_search_url: str = "https://duckduckgo.com/html/?q={query}"

    # Browsing collaborator
    browser_headless: bool = True
    navigation_timeout_seconds: float = 30.0
    quiescence_timeout_seconds: float = 10.0
    cookie_attempt_timeout_seconds: float = 2.0
    extract_timeout_seconds: float = 60.0
    observe_timeout_seconds: float = 30.0
    extractor_max_page_chars: int = 20000
    navigation_retry_attempts: int = 2

    # Recognized profile site (session gated)
    profile_site_domain: str = "linkedin.com"
    profile_site_path_marker: str = "/in/"
    profile_site_login_url: str = "https://www.linkedin.com/login"
    profile_site_email: str = ""
    profile_site_password: str = ""
    profile_site_login_attempts: int = 2

    # Research loop
    max_iterations: int = 10
    navigation_failure_limit: int = 3
    findings_acceptance_threshold: float = 0.6
    findings_cap: int = 5
    findings_minimum: int = 3
    follow_up_query_count: int = 3
    follow_up_url_count: int = 3
    seed_query_count: int = 2
    prompt_search_results_window: int = 5

    # Job scheduler
    worker_slots: int = 1
    job_attempts: int = 3
    job_backoff_type: str = "exponential"  # exponential | fixed
    job_backoff_delay_seconds: float = 1.0
    job_timeout_seconds: float = 1200.0
    job_retention_seconds: float = 24 * 60 * 60
    job_keep_completed: int = 100
    job_keep_failed: int = 100
    job_event_log_size: int = 200
    sweep_interval_seconds: float = 60.0
    stall_window_seconds: float = 300.0
    stall_check_interval_seconds: float = 15.0
    result_cache_size: int = 100
    result_cache_ttl_seconds: float = 24 * 60 * 60

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]

    @property
    def active_model(self) -> str:
        return self.openrouter_model or self.default_model


settings = Settings()
