from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    """Raised when required configuration or credentials are missing."""


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql://postgres@localhost:5432/minefilings"

    # SEC EDGAR requires a descriptive User-Agent: "Company Name contact@example.com"
    SEC_USER_AGENT: str = "MineFilings Research research@minefilings.dev"
    EDGAR_SEARCH_URL: str = "https://efts.sec.gov/LATEST/search-index"
    EDGAR_SUBMISSIONS_URL: str = "https://data.sec.gov/submissions"
    EDGAR_ARCHIVES_URL: str = "https://www.sec.gov/Archives/edgar/data"
    EDGAR_SEARCH_QUERIES: list[str] = [
        '"EX-96.1"',
        '"technical report summary"',
        '"NI 43-101"',
        '"feasibility study"',
    ]
    EDGAR_COMPANY_CIKS: list[str] = [
        "1966983",  # Atlas Lithium
        "1375205",  # Ur-Energy
        "1376793",  # Uranium Energy Corp
        "1589526",  # Piedmont Lithium
        "1590955",  # MP Materials
        "1651625",  # Lithium Americas
        "1798562",  # Sigma Lithium
        "1720014",  # Talon Metals
        "1859690",  # NioCorp
    ]
    EDGAR_PAGE_SIZE: int = 100
    EDGAR_MAX_PAGES: int = 5
    EDGAR_RECENT_FILINGS: int = 30

    QUOTEMEDIA_BASE_URL: str = "https://app.quotemedia.com"
    QUOTEMEDIA_WMID: int = 131706
    QUOTEMEDIA_PASSWORD: SecretStr | None = None
    QUOTEMEDIA_SYMBOLS: list[str] = []
    QUOTEMEDIA_TOKEN_TTL_S: int = 30 * 24 * 3600

    # Any of "edgar_search", "edgar_company", "quotemedia"
    DISCOVERY_SOURCES: list[str] = ["edgar_search", "edgar_company"]

    HTTP_TIMEOUT_S: float = 20.0
    HTTP_MAX_ATTEMPTS: int = 1  # 1 == no retry
    MIN_REQUEST_INTERVAL_S: float = 0.2
    MAX_CONCURRENCY: int = 4
    MAX_DOCUMENT_CHARS: int = 300_000

    MIN_CHECKLIST_RATIO: float = 0.30
    PROTECT_HIGHER_CONFIDENCE: bool = False

    AI_ENABLED: bool = False
    LLM_BACKEND: str = "ollama"  # "ollama" or "openai"
    LLM_MODEL: str = "llama3.1:8b"
    LLM_BASE_URL: str = "http://localhost:11434"
    LLM_API_KEY: SecretStr | None = None
    LLM_TIMEOUT_S: float = 60.0
    LLM_TEMPERATURE: float = 0.1
    LLM_MAX_TOKENS: int = 1000
    AI_EXCERPT_CHARS: int = 8000

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
