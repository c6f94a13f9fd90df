"""
Olocus - Configuration Management
===================================
Gestione centralizzata configurazione con Pydantic Settings.
Supporta environment variables, file .env, override runtime.

Security Level: HIGH
Last Updated: 2026-10-19
Version: 1.0.0

Features:
- Validazione automatica tipi e range
- Environment variables con prefisso OLOCUS_
- File .env support
- Report delle deviazioni dai default di protocollo
"""

from pathlib import Path
from typing import Optional, List, Dict, Tuple
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from olocus.constants import (
    PROTOCOL_VERSION_MAJOR,
    PROTOCOL_VERSION_MINOR,
    MAX_FUTURE_DRIFT,
    MAX_BLOCK_AGE,
    MAX_PAYLOAD_SIZE,
    MAX_REORG_DEPTH,
    NONCE_WINDOW_SECONDS,
    NONCE_CACHE_SIZE,
    NEGOTIATION_TIMEOUT_SECONDS,
    DEFAULT_MIN_SECURITY_LEVEL,
)


# Default di protocollo: ogni override è una deviazione documentata
PROTOCOL_DEFAULTS: Dict[str, int] = {
    "max_future_drift": MAX_FUTURE_DRIFT,
    "max_block_age": MAX_BLOCK_AGE,
    "max_payload_size": MAX_PAYLOAD_SIZE,
    "max_reorg_depth": MAX_REORG_DEPTH,
}


# ============================================================================
# MAIN CONFIGURATION CLASS
# ============================================================================

class OlocusSettings(BaseSettings):
    """
    Configurazione principale Olocus.

    Supporta:
    - Caricamento da environment variables (OLOCUS_*)
    - Caricamento da file .env
    - Override programmatici
    - Validazione automatica

    Example:
        # Da environment
        export OLOCUS_MAX_FUTURE_DRIFT=120
        export OLOCUS_FORBIDDEN_SUITES='[1]'

        # Da codice
        config = OlocusSettings(min_security_level=192)
    """

    model_config = SettingsConfigDict(
        env_prefix='OLOCUS_',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    # ========================================================================
    # PROTOCOL
    # ========================================================================

    protocol_version: str = Field(
        default=f"{PROTOCOL_VERSION_MAJOR}.{PROTOCOL_VERSION_MINOR}",
        description="Versione protocollo locale (major.minor)"
    )

    # ========================================================================
    # CHAIN VALIDATION
    # ========================================================================

    max_future_drift: int = Field(
        default=MAX_FUTURE_DRIFT,
        ge=0,
        le=86_400,
        description="Secondi massimi di timestamp nel futuro"
    )

    max_block_age: int = Field(
        default=MAX_BLOCK_AGE,
        ge=1,
        description="Età massima blocco rispetto a now (secondi)"
    )

    max_payload_size: int = Field(
        default=MAX_PAYLOAD_SIZE,
        ge=0,
        le=0xFFFF_FFFF,
        description="Dimensione massima payload (bytes)"
    )

    max_reorg_depth: int = Field(
        default=MAX_REORG_DEPTH,
        ge=0,
        description="Profondità massima reorganization (blocchi)"
    )

    batch_verify_workers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Thread per batch signature verification"
    )

    # ========================================================================
    # ALGORITHM NEGOTIATION
    # ========================================================================

    min_security_level: int = Field(
        default=DEFAULT_MIN_SECURITY_LEVEL,
        ge=0,
        le=256,
        description="Livello sicurezza minimo (bit) della suite negoziata"
    )

    forbidden_suites: List[int] = Field(
        default_factory=list,
        description="Suite id mai selezionabili (deny-list)"
    )

    nonce_window_seconds: int = Field(
        default=NONCE_WINDOW_SECONDS,
        ge=1,
        le=86_400,
        description="Finestra di freschezza offerte/nonce (secondi)"
    )

    nonce_cache_size: int = Field(
        default=NONCE_CACHE_SIZE,
        ge=1,
        description="Numero massimo nonce tracciati"
    )

    negotiation_timeout_seconds: int = Field(
        default=NEGOTIATION_TIMEOUT_SECONDS,
        ge=1,
        le=3600,
        description="Timeout sessione di negoziazione (secondi)"
    )

    # ========================================================================
    # LOGGING
    # ========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )

    log_to_file: bool = Field(
        default=False,
        description="Salva log su file"
    )

    log_dir: Path = Field(
        default=Path("./logs"),
        description="Directory log files"
    )

    log_format: str = Field(
        default="json",
        description="Formato log: json, text"
    )

    log_rotation_mb: int = Field(
        default=100,
        ge=1,
        description="Dimensione max file log prima rotation (MB)"
    )

    log_retention_days: int = Field(
        default=30,
        ge=1,
        description="Giorni retention log files"
    )

    # ========================================================================
    # VALIDATORS
    # ========================================================================

    @field_validator('protocol_version')
    @classmethod
    def validate_protocol_version(cls, v: str) -> str:
        """Valida formato major.minor"""
        parts = v.strip().split('.')
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError(f"Invalid protocol_version: {v}. Expected major.minor")

        major, minor = (int(p) for p in parts)
        if not (0 <= major <= 255 and 0 <= minor <= 255):
            raise ValueError(f"Invalid protocol_version: {v}. Components must be 0-255")
        return f"{major}.{minor}"

    @field_validator('forbidden_suites')
    @classmethod
    def validate_forbidden_suites(cls, v: List[int]) -> List[int]:
        """Valida suite id (u8)"""
        for suite_id in v:
            if not (0 <= suite_id <= 0xFF):
                raise ValueError(f"Invalid suite id: {suite_id}. Must be 0-255")
        return sorted(set(v))

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Valida log level"""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log_level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Valida formato log"""
        v_lower = v.lower()
        if v_lower not in ('json', 'text'):
            raise ValueError(f"Invalid log_format: {v}. Must be json or text")
        return v_lower

    # ========================================================================
    # HELPER METHODS
    # ========================================================================

    def get_protocol_version(self) -> Tuple[int, int]:
        """Ottieni versione come (major, minor)"""
        major, minor = self.protocol_version.split('.')
        return int(major), int(minor)

    def deviations(self) -> Dict[str, Tuple[int, int]]:
        """
        Override rispetto ai default di protocollo.

        Returns:
            dict: nome campo -> (default, valore configurato)

        Example:
            >>> OlocusSettings(max_reorg_depth=10).deviations()
            {'max_reorg_depth': (100, 10)}
        """
        return {
            name: (default, getattr(self, name))
            for name, default in PROTOCOL_DEFAULTS.items()
            if getattr(self, name) != default
        }

    def to_dict(self) -> dict:
        """Serializza config"""
        return self.model_dump()

    def to_json(self) -> str:
        """Serializza config in JSON"""
        return self.model_dump_json(indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> "OlocusSettings":
        """Carica config da JSON"""
        return cls.model_validate_json(json_str)

    def __repr__(self) -> str:
        return (
            f"OlocusSettings("
            f"protocol_version={self.protocol_version}, "
            f"max_reorg_depth={self.max_reorg_depth}, "
            f"min_security_level={self.min_security_level})"
        )


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

@lru_cache(maxsize=1)
def get_settings() -> OlocusSettings:
    """
    Ottieni singleton instance di OlocusSettings.

    Cached (chiamate multiple restituiscono stessa istanza).

    Returns:
        OlocusSettings: Instance configurazione
    """
    return OlocusSettings()


def reload_settings() -> OlocusSettings:
    """
    Ricarica settings (invalida cache).

    Usare quando si cambiano environment variables runtime.
    """
    get_settings.cache_clear()
    return get_settings()


def override_settings(**kwargs) -> OlocusSettings:
    """
    Override settings con valori custom.

    Utile per testing.

    Example:
        >>> test_config = override_settings(max_reorg_depth=5)
    """
    return OlocusSettings(**kwargs)


# ============================================================================
# CONFIGURATION VALIDATION
# ============================================================================

def validate_config(config: OlocusSettings) -> tuple[bool, list[str]]:
    """
    Valida coerenza configurazione completa.

    Le deviazioni dai default di protocollo sono riportate come WARNING
    (non invalidano la config).

    Args:
        config: OlocusSettings da validare

    Returns:
        tuple: (is_valid, messages)
    """
    from olocus.negotiation.suites import SUITE_TABLE, BASELINE_SUITE_ID

    errors = []
    warnings = []

    for name, (default, value) in config.deviations().items():
        warnings.append(f"WARNING: {name} overridden ({default} -> {value})")

    if config.max_block_age <= config.max_future_drift:
        errors.append("max_block_age must be greater than max_future_drift")

    unknown = [s for s in config.forbidden_suites if s not in SUITE_TABLE]
    if unknown:
        warnings.append(f"WARNING: forbidden_suites contains unknown ids {unknown}")

    if BASELINE_SUITE_ID in config.forbidden_suites:
        warnings.append("WARNING: baseline suite 0x00 is forbidden")

    selectable = [
        suite for suite in SUITE_TABLE.values()
        if suite.suite_id not in config.forbidden_suites
        and suite.security_level >= config.min_security_level
    ]
    if not selectable:
        errors.append("No suite satisfies min_security_level and forbidden_suites")

    if config.negotiation_timeout_seconds > config.nonce_window_seconds:
        warnings.append(
            "WARNING: negotiation_timeout_seconds exceeds nonce_window_seconds"
        )

    return (len(errors) == 0, errors + warnings)


# ============================================================================
# EXPORT
# ============================================================================

__all__ = [
    "OlocusSettings",
    "PROTOCOL_DEFAULTS",
    "get_settings",
    "reload_settings",
    "override_settings",
    "validate_config",
]
