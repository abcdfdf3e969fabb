"""
Configuration Module

Parses the flat key/value configuration (environment variables, optionally
seeded from a .env file) into a typed, immutable snapshot. The snapshot is
built once per batch and threaded through every component; nothing in the
core reads the environment on its own.

Every key has a documented default, so a missing setting never stops a batch.
"""

import json
import logging
import os
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


class DeliveryMode(str, Enum):
    PRODUCTION = "production"
    TEST = "test"
    DRY_RUN = "dry-run"

    @classmethod
    def parse(cls, value: Optional[str]) -> "DeliveryMode":
        if value is None or not str(value).strip():
            return cls.PRODUCTION
        normalized = str(value).strip().lower().replace("_", "-")
        if normalized == "dryrun":
            normalized = "dry-run"
        for mode in cls:
            if mode.value == normalized:
                return mode
        raise ConfigurationError(
            f"Unknown mode '{value}' (expected one of: {', '.join(m.value for m in cls)})"
        )


@dataclass(frozen=True)
class FieldLayout:
    """Placement of one text field, in template pixel space."""

    x: int
    y: int
    font_size: int
    color: str = "#000000"
    font_family: str = "Arial"
    enabled: bool = True


@dataclass(frozen=True)
class QrLayout:
    """Placement of the QR code; (x, y) is its top-left corner."""

    x: int
    y: int
    size: int
    enabled: bool = False


@dataclass(frozen=True)
class LayoutConfig:
    name: FieldLayout = FieldLayout(1240, 1400, 80, "#1a1a1a", "Arial", True)
    event: FieldLayout = FieldLayout(1240, 1600, 50, "#4a4a4a", "Arial", True)
    certificate_id: FieldLayout = FieldLayout(200, 3200, 30, "#888888", "Arial", True)
    qr: QrLayout = QrLayout(2100, 3000, 200, False)

    def text_fields(self) -> Dict[str, FieldLayout]:
        return {
            "name": self.name,
            "event": self.event,
            "certificateId": self.certificate_id,
        }

    def merged_with(self, overrides: Mapping[str, Any]) -> "LayoutConfig":
        """
        Apply a position-editor style mapping on top of this layout.

        Args:
            overrides: {"name"|"event"|"certificateId"|"qr": {x, y, fontSize|size,
                color, fontFamily, enabled}}; missing keys keep their current value.

        Returns:
            A new LayoutConfig
        """
        updated = {}
        for key, attr in (("name", "name"), ("event", "event"), ("certificateId", "certificate_id")):
            values = overrides.get(key)
            if not values:
                continue
            current = getattr(self, attr)
            updated[attr] = replace(
                current,
                x=_coerce_int(values.get("x"), current.x, f"{key}.x"),
                y=_coerce_int(values.get("y"), current.y, f"{key}.y"),
                font_size=_coerce_int(values.get("fontSize"), current.font_size, f"{key}.fontSize"),
                color=str(values.get("color") or current.color),
                font_family=str(values.get("fontFamily") or values.get("font") or current.font_family),
                enabled=_coerce_bool(values.get("enabled"), current.enabled),
            )
        qr_values = overrides.get("qr")
        if qr_values:
            updated["qr"] = replace(
                self.qr,
                x=_coerce_int(qr_values.get("x"), self.qr.x, "qr.x"),
                y=_coerce_int(qr_values.get("y"), self.qr.y, "qr.y"),
                size=_coerce_int(qr_values.get("size"), self.qr.size, "qr.size"),
                enabled=_coerce_bool(qr_values.get("enabled"), self.qr.enabled),
            )
        return replace(self, **updated)


@dataclass(frozen=True)
class EmailSettings:
    transport: str = "smtp"
    host: str = "smtp.gmail.com"
    port: int = 587
    secure: bool = False
    user: str = ""
    password: str = ""
    from_name: str = "Club Name"
    subject: str = "Your Certificate of Participation"
    template_path: str = ""
    admin_email: str = ""
    token_path: str = "token.json"
    credentials_path: str = "credentials.json"
    timeout: int = 30
    max_retries: int = 3
    retry_delay_ms: int = 5000

    @property
    def operator_address(self) -> str:
        return self.admin_email or self.user


@dataclass(frozen=True)
class BatchConfig:
    """Immutable configuration snapshot for one batch run."""

    mode: DeliveryMode = DeliveryMode.PRODUCTION
    input_path: str = "./data/participants.xlsx"
    template_path: str = "./templates/certificate.png"
    font_path: str = "./templates/font.ttf"
    output_dir: str = "./output/generated-certificates"
    save_certificates: bool = True
    auto_cleanup: bool = False
    log_dir: str = "./logs"
    verification_store_path: str = "./data/certificates.json"
    event_name: str = "Event"
    certificate_id_prefix: str = "CERT"
    issue_date: Optional[date] = None
    verification_url: str = "https://yourclub.com/verify/"
    email_delay_ms: int = 3000
    name_max_width_ratio: float = 0.7
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    email: EmailSettings = field(default_factory=EmailSettings)

    @property
    def is_dry_run(self) -> bool:
        return self.mode is DeliveryMode.DRY_RUN

    def with_overrides(self, **changes: Any) -> "BatchConfig":
        return replace(self, **changes)


def _coerce_int(value: Any, default: int, key: str) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        logger.warning(f"Invalid integer for {key}: {value!r}; using default {default}")
        return default


def _coerce_float(value: Any, default: float, key: str) -> float:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid number for {key}: {value!r}; using default {default}")
        return default


def _coerce_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return default


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value or not value.strip():
        return None
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        logger.warning(f"Invalid ISSUE_DATE {value!r}; expected YYYY-MM-DD, using the run date")
        return None


def _field_from_env(env: Mapping[str, str], prefix: str, default: FieldLayout) -> FieldLayout:
    return FieldLayout(
        x=_coerce_int(env.get(f"{prefix}_X"), default.x, f"{prefix}_X"),
        y=_coerce_int(env.get(f"{prefix}_Y"), default.y, f"{prefix}_Y"),
        font_size=_coerce_int(env.get(f"{prefix}_FONT_SIZE"), default.font_size, f"{prefix}_FONT_SIZE"),
        color=env.get(f"{prefix}_COLOR") or default.color,
        font_family=env.get(f"{prefix}_FONT") or default.font_family,
        enabled=_coerce_bool(env.get(f"{prefix}_ENABLED"), default.enabled),
    )


def load_layout(env: Mapping[str, str]) -> LayoutConfig:
    """
    Build the layout from environment keys, then apply LAYOUT_CONFIG_PATH if set.

    Raises:
        ConfigurationError: If the layout JSON file exists but cannot be parsed
    """
    defaults = LayoutConfig()
    layout = LayoutConfig(
        name=_field_from_env(env, "NAME", defaults.name),
        event=_field_from_env(env, "EVENT", defaults.event),
        certificate_id=_field_from_env(env, "CERT_ID", defaults.certificate_id),
        qr=QrLayout(
            x=_coerce_int(env.get("QR_X"), defaults.qr.x, "QR_X"),
            y=_coerce_int(env.get("QR_Y"), defaults.qr.y, "QR_Y"),
            size=_coerce_int(env.get("QR_SIZE"), defaults.qr.size, "QR_SIZE"),
            enabled=_coerce_bool(env.get("QR_ENABLED"), defaults.qr.enabled),
        ),
    )

    layout_path = env.get("LAYOUT_CONFIG_PATH")
    if layout_path:
        path = Path(layout_path)
        if not path.exists():
            logger.warning(f"Layout file not found: {path}; using environment layout")
            return layout
        try:
            overrides = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Could not read layout file {path}: {e}") from e
        if not isinstance(overrides, dict):
            raise ConfigurationError(f"Layout file {path} must contain a JSON object")
        layout = layout.merged_with(overrides)
        logger.info(f"Applied layout overrides from {path}")
    return layout


def load_config(
    env: Optional[Mapping[str, str]] = None,
    dotenv_path: Optional[str] = None,
    **overrides: Any,
) -> BatchConfig:
    """
    Produce the configuration snapshot for one batch.

    Args:
        env: Mapping to read from. Defaults to os.environ after loading .env.
        dotenv_path: Optional explicit .env file.
        **overrides: BatchConfig fields that take precedence (e.g. mode from the CLI).

    Returns:
        BatchConfig
    """
    if env is None:
        load_dotenv(dotenv_path)
        env = os.environ

    email = EmailSettings(
        transport=(env.get("EMAIL_TRANSPORT") or "smtp").strip().lower(),
        host=env.get("EMAIL_HOST") or "smtp.gmail.com",
        port=_coerce_int(env.get("EMAIL_PORT"), 587, "EMAIL_PORT"),
        secure=_coerce_bool(env.get("EMAIL_SECURE"), False),
        user=env.get("EMAIL_USER") or "",
        password=env.get("EMAIL_PASSWORD") or "",
        from_name=env.get("EMAIL_FROM_NAME") or "Club Name",
        subject=env.get("EMAIL_SUBJECT") or "Your Certificate of Participation",
        template_path=env.get("EMAIL_TEMPLATE_PATH") or "",
        admin_email=env.get("ADMIN_EMAIL") or "",
        token_path=env.get("TOKEN_PATH") or "token.json",
        credentials_path=env.get("GOOGLE_APPLICATION_CREDENTIALS") or "credentials.json",
        timeout=_coerce_int(env.get("SMTP_TIMEOUT"), 30, "SMTP_TIMEOUT"),
        max_retries=max(1, _coerce_int(env.get("MAX_RETRIES"), 3, "MAX_RETRIES")),
        retry_delay_ms=max(0, _coerce_int(env.get("RETRY_DELAY"), 5000, "RETRY_DELAY")),
    )

    config = BatchConfig(
        mode=DeliveryMode.parse(env.get("MODE")),
        input_path=env.get("EXCEL_FILE_PATH") or "./data/participants.xlsx",
        template_path=env.get("CERTIFICATE_TEMPLATE_PATH") or "./templates/certificate.png",
        font_path=env.get("FONT_PATH") or "./templates/font.ttf",
        output_dir=env.get("OUTPUT_DIR") or "./output/generated-certificates",
        save_certificates=_coerce_bool(env.get("SAVE_CERTIFICATES"), True),
        auto_cleanup=_coerce_bool(env.get("AUTO_CLEANUP"), False),
        log_dir=env.get("LOG_DIR") or "./logs",
        verification_store_path=env.get("VERIFICATION_STORE_PATH") or "./data/certificates.json",
        event_name=env.get("EVENT_NAME") or "Event",
        certificate_id_prefix=env.get("CERTIFICATE_ID_PREFIX") or "CERT",
        issue_date=_parse_date(env.get("ISSUE_DATE")),
        verification_url=env.get("VERIFICATION_URL") or "https://yourclub.com/verify/",
        email_delay_ms=max(0, _coerce_int(env.get("EMAIL_DELAY"), 3000, "EMAIL_DELAY")),
        name_max_width_ratio=_coerce_float(env.get("NAME_MAX_WIDTH_RATIO"), 0.7, "NAME_MAX_WIDTH_RATIO"),
        layout=load_layout(env),
        email=email,
    )
    if overrides:
        config = config.with_overrides(**overrides)
    return config
