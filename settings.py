"""
Application settings and logging setup.

Values come from a Streamlit-style secrets mapping first, then environment
variables, then defaults.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from docscan.validation import MAX_FILE_SIZE

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    backend_url: str = "http://127.0.0.1:8000"
    backend_timeout: float = 60.0
    use_local_backend: bool = True
    table_name: str = "DocScanDocuments"
    bucket_name: Optional[str] = None
    region_name: str = "us-east-1"
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    max_file_size: int = MAX_FILE_SIZE
    editor_max_width: int = 560
    editor_max_height: int = 500
    enhance: bool = True
    auto_trim: bool = True
    log_level: str = "INFO"

    @property
    def has_aws_credentials(self) -> bool:
        return bool(self.aws_access_key_id and self.aws_secret_access_key)

    @property
    def editor_box(self):
        return (self.editor_max_width, self.editor_max_height)


def _section(secrets: Optional[Mapping[str, Any]], name: str) -> Mapping[str, Any]:
    if secrets is None:
        return {}
    try:
        return secrets.get(name) or {}
    except Exception:
        # st.secrets raises when no secrets.toml exists
        return {}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def load_settings(secrets: Optional[Mapping[str, Any]] = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build ``Settings`` from secrets and the environment."""
    env = os.environ if environ is None else environ
    aws = _section(secrets, "aws")
    backend = _section(secrets, "backend")
    defaults = Settings()

    def pick(section: Mapping[str, Any], secret_key: str, env_key: str, default: Any) -> Any:
        if secret_key in section and section[secret_key] not in (None, ""):
            return section[secret_key]
        if env.get(env_key) not in (None, ""):
            return env[env_key]
        return default

    return Settings(
        backend_url=str(pick(backend, "url", "DOCSCAN_BACKEND_URL", defaults.backend_url)),
        backend_timeout=float(pick(backend, "timeout", "DOCSCAN_BACKEND_TIMEOUT", defaults.backend_timeout)),
        use_local_backend=_parse_bool(pick(backend, "local", "DOCSCAN_LOCAL_BACKEND", defaults.use_local_backend)),
        table_name=str(pick(aws, "table_name", "DYNAMODB_TABLE", defaults.table_name)),
        bucket_name=pick(aws, "s3_bucket", "S3_BUCKET", defaults.bucket_name),
        region_name=str(pick(aws, "region", "AWS_REGION", defaults.region_name)),
        aws_access_key_id=pick(aws, "access_key_id", "AWS_ACCESS_KEY_ID", None),
        aws_secret_access_key=pick(aws, "secret_access_key", "AWS_SECRET_ACCESS_KEY", None),
        max_file_size=int(pick(backend, "max_file_size", "DOCSCAN_MAX_FILE_SIZE", defaults.max_file_size)),
        editor_max_width=int(pick(backend, "editor_max_width", "DOCSCAN_EDITOR_MAX_WIDTH", defaults.editor_max_width)),
        editor_max_height=int(pick(backend, "editor_max_height", "DOCSCAN_EDITOR_MAX_HEIGHT", defaults.editor_max_height)),
        enhance=_parse_bool(pick(backend, "enhance", "DOCSCAN_ENHANCE", defaults.enhance)),
        auto_trim=_parse_bool(pick(backend, "auto_trim", "DOCSCAN_AUTO_TRIM", defaults.auto_trim)),
        log_level=str(pick(backend, "log_level", "DOCSCAN_LOG_LEVEL", defaults.log_level)).upper(),
    )


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Install one stream handler on the root logger. Safe to call repeatedly."""
    root = logging.getLogger()
    if not any(getattr(h, "_docscan", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._docscan = True
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return root
