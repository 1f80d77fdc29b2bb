import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    doc_number_digits: int
    numbering_max_retries: int
    require_clean_scan_for_release: bool
    identity_trust_headers: bool


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name, "1" if default else "0").lower()
    return raw in ("1", "true", "yes", "on")


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///doctrack.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        doc_number_digits=_getenv_int("DOC_NUMBER_DIGITS", 5),
        numbering_max_retries=_getenv_int("NUMBERING_MAX_RETRIES", 10),
        require_clean_scan_for_release=_getenv_bool("REQUIRE_CLEAN_SCAN_FOR_RELEASE", False),
        identity_trust_headers=_getenv_bool("IDENTITY_TRUST_HEADERS", True),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "DOC_NUMBER_DIGITS": s.doc_number_digits,
        "NUMBERING_MAX_RETRIES": s.numbering_max_retries,
        "REQUIRE_CLEAN_SCAN_FOR_RELEASE": s.require_clean_scan_for_release,
        "IDENTITY_TRUST_HEADERS": s.identity_trust_headers,
        # JSON API only; keep payloads small
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
