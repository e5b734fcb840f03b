"""
Configuration Management for the Query Doctor analysis engine
Loads all settings from environment variables with validation and defaults
"""
import os
import logging
from pathlib import Path
from typing import Dict, List, Optional
from dataclasses import dataclass, field

import sqlglot
from dotenv import load_dotenv

from query_doctor.orchestration.deduplicator import DEFAULT_ISSUE_PRIORITIES

# Load .env file
load_dotenv()

logger = logging.getLogger(__name__)


def get_env(key: str, default: Optional[str] = None, required: bool = False) -> str:
    """
    Get environment variable with validation

    Args:
        key: Environment variable name
        default: Default value if not found
        required: If True, raise error if not found

    Returns:
        Environment variable value

    Raises:
        ValueError: If required variable is missing
    """
    value = os.getenv(key, default)

    if required and not value:
        raise ValueError(f"Required environment variable '{key}' is not set")

    return value


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable"""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on')


def get_env_int(key: str, default: Optional[int] = None) -> Optional[int]:
    """Get environment variable as integer"""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        logger.warning(f"Invalid integer for {key}: {value}, using default: {default}")
        return default


def get_env_float(key: str, default: float) -> float:
    """Get float environment variable"""
    value = os.getenv(key, str(default))
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Invalid float for {key}={value}, using default {default}")
        return default


def get_env_list(key: str, default: Optional[List[str]] = None, separator: str = ',') -> List[str]:
    """Get list environment variable"""
    value = os.getenv(key, '')
    if not value and default:
        return list(default)
    return [item.strip() for item in value.split(separator) if item.strip()]


# ============================================================================
# SQL PARSING CONFIGURATION
# ============================================================================

@dataclass
class SqlConfig:
    """SQL grammar used by the structural extractor"""
    dialect: str

    @classmethod
    def from_env(cls) -> 'SqlConfig':
        return cls(
            dialect=get_env('SQL_DIALECT', 'mysql'),
        )

    def validate(self):
        """Validate configuration"""
        try:
            sqlglot.Dialect.get_or_raise(self.dialect)
        except ValueError:
            raise ValueError(f"Unknown SQL dialect: {self.dialect}")


# ============================================================================
# N+1 DETECTION CONFIGURATION
# ============================================================================

@dataclass
class NPlusOneConfig:
    """N+1 detection thresholds"""
    threshold: int
    proxy_multiplier: float
    warning_count: int
    critical_count: int
    warning_time_ms: float
    critical_time_ms: float

    @classmethod
    def from_env(cls) -> 'NPlusOneConfig':
        return cls(
            threshold=get_env_int('N_PLUS_ONE_THRESHOLD', 5),
            proxy_multiplier=get_env_float('N_PLUS_ONE_PROXY_MULTIPLIER', 1.3),
            warning_count=get_env_int('N_PLUS_ONE_WARNING_COUNT', 10),
            critical_count=get_env_int('N_PLUS_ONE_CRITICAL_COUNT', 20),
            warning_time_ms=get_env_float('N_PLUS_ONE_WARNING_TIME_MS', 500.0),
            critical_time_ms=get_env_float('N_PLUS_ONE_CRITICAL_TIME_MS', 1000.0),
        )

    def validate(self):
        """Validate configuration"""
        if self.threshold < 2:
            raise ValueError(f"N+1 threshold must be at least 2, got {self.threshold}")
        if self.proxy_multiplier < 1.0:
            raise ValueError(f"Invalid proxy_multiplier: {self.proxy_multiplier}")
        if self.warning_count > self.critical_count:
            raise ValueError(
                f"warning_count ({self.warning_count}) cannot exceed "
                f"critical_count ({self.critical_count})"
            )
        if self.warning_time_ms > self.critical_time_ms:
            raise ValueError(
                f"warning_time_ms ({self.warning_time_ms}) cannot exceed "
                f"critical_time_ms ({self.critical_time_ms})"
            )


# ============================================================================
# JOIN OPTIMIZATION CONFIGURATION
# ============================================================================

@dataclass
class JoinOptimizationConfig:
    """JOIN count ceilings"""
    max_joins_recommended: int
    max_joins_critical: int

    @classmethod
    def from_env(cls) -> 'JoinOptimizationConfig':
        return cls(
            max_joins_recommended=get_env_int('MAX_JOINS_RECOMMENDED', 5),
            max_joins_critical=get_env_int('MAX_JOINS_CRITICAL', 8),
        )

    def validate(self):
        """Validate configuration"""
        if self.max_joins_recommended > self.max_joins_critical:
            raise ValueError(
                f"max_joins_recommended ({self.max_joins_recommended}) cannot exceed "
                f"max_joins_critical ({self.max_joins_critical})"
            )


# ============================================================================
# HYDRATION CONFIGURATION
# ============================================================================

@dataclass
class HydrationConfig:
    """Row-count thresholds for hydration volume"""
    row_threshold: int
    critical_threshold: int

    @classmethod
    def from_env(cls) -> 'HydrationConfig':
        return cls(
            row_threshold=get_env_int('HYDRATION_ROW_THRESHOLD', 100),
            critical_threshold=get_env_int('HYDRATION_CRITICAL_THRESHOLD', 1000),
        )

    def validate(self):
        """Validate configuration"""
        if self.row_threshold > self.critical_threshold:
            raise ValueError(
                f"row_threshold ({self.row_threshold}) cannot exceed "
                f"critical_threshold ({self.critical_threshold})"
            )


# ============================================================================
# SLOW QUERY CONFIGURATION
# ============================================================================

@dataclass
class SlowQueryConfig:
    """Slow query threshold"""
    threshold_ms: float

    @classmethod
    def from_env(cls) -> 'SlowQueryConfig':
        return cls(
            threshold_ms=get_env_float('SLOW_QUERY_THRESHOLD_MS', 100.0),
        )

    def validate(self):
        """Validate configuration"""
        if self.threshold_ms <= 0:
            raise ValueError(f"Slow query threshold must be positive, got {self.threshold_ms}")
        if self.threshold_ms >= 100000:
            raise ValueError(f"Slow query threshold seems unreasonably high (>100s), got {self.threshold_ms}ms")


# ============================================================================
# INJECTION RISK CONFIGURATION
# ============================================================================

@dataclass
class InjectionConfig:
    """Risk levels that turn injection indicators into issues"""
    critical_risk: int
    high_risk: int

    @classmethod
    def from_env(cls) -> 'InjectionConfig':
        return cls(
            critical_risk=get_env_int('INJECTION_CRITICAL_RISK', 3),
            high_risk=get_env_int('INJECTION_HIGH_RISK', 2),
        )

    def validate(self):
        """Validate configuration"""
        if not (0 < self.high_risk < self.critical_risk):
            raise ValueError(
                f"Risk levels must be ordered: 0 < high ({self.high_risk}) "
                f"< critical ({self.critical_risk})"
            )


# ============================================================================
# PIPELINE CONFIGURATION
# ============================================================================

@dataclass
class PipelineConfig:
    """Orchestration limits and query filtering"""
    memory_limit_mb: int
    memory_threshold_fraction: float
    excluded_paths: List[str]
    enabled_analyzers: List[str]

    @classmethod
    def from_env(cls) -> 'PipelineConfig':
        return cls(
            memory_limit_mb=get_env_int('MEMORY_LIMIT_MB', 512),
            memory_threshold_fraction=get_env_float('MEMORY_THRESHOLD_FRACTION', 0.70),
            excluded_paths=get_env_list('EXCLUDED_PATHS', ['vendor/']),
            enabled_analyzers=get_env_list('ENABLED_ANALYZERS'),
        )

    @property
    def memory_limit_bytes(self) -> Optional[int]:
        """Memory ceiling in bytes, None when the guard is disabled"""
        if self.memory_limit_mb <= 0:
            return None
        return self.memory_limit_mb * 1024 * 1024

    def validate(self):
        """Validate configuration"""
        if not 0.0 < self.memory_threshold_fraction <= 1.0:
            raise ValueError(f"Invalid memory_threshold_fraction: {self.memory_threshold_fraction}")


# ============================================================================
# DEDUPLICATION CONFIGURATION
# ============================================================================

@dataclass
class DeduplicationConfig:
    """Priority table used to pick one issue per signature group"""
    priorities: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_ISSUE_PRIORITIES))

    @classmethod
    def from_env(cls) -> 'DeduplicationConfig':
        priorities = dict(DEFAULT_ISSUE_PRIORITIES)

        # ISSUE_PRIORITIES="Slow Query:95,Unused JOIN:10"
        for item in get_env_list('ISSUE_PRIORITIES'):
            keyword, _, weight = item.rpartition(':')
            try:
                priorities[keyword.strip()] = int(weight)
            except ValueError:
                logger.warning(f"Invalid priority entry '{item}', ignoring")

        return cls(priorities=priorities)

    def validate(self):
        """Validate configuration"""
        for keyword, weight in self.priorities.items():
            if not keyword:
                raise ValueError("Priority keyword cannot be empty")
            if weight < 0:
                raise ValueError(f"Priority for '{keyword}' must be positive, got {weight}")


# ============================================================================
# FILE PATHS CONFIGURATION
# ============================================================================

@dataclass
class PathConfig:
    """File paths configuration"""
    log_dir: Path

    @classmethod
    def from_env(cls) -> 'PathConfig':
        return cls(
            log_dir=Path(get_env('LOG_DIR', './logs')),
        )


# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str
    format: str

    @classmethod
    def from_env(cls) -> 'LoggingConfig':
        return cls(
            level=get_env('LOG_LEVEL', 'INFO'),
            format=get_env('LOG_FORMAT',
                          '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
        )

    def configure(self):
        """Configure Python logging"""
        level = getattr(logging, self.level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format=self.format,
            datefmt='%Y-%m-%d %H:%M:%S'
        )


# ============================================================================
# MASTER SETTINGS CLASS
# ============================================================================

@dataclass
class Settings:
    """Master settings container"""
    sql: SqlConfig
    n_plus_one: NPlusOneConfig
    joins: JoinOptimizationConfig
    hydration: HydrationConfig
    slow_query: SlowQueryConfig
    injection: InjectionConfig
    pipeline: PipelineConfig
    deduplication: DeduplicationConfig
    paths: PathConfig
    logging: LoggingConfig

    @classmethod
    def from_env(cls) -> 'Settings':
        """Load all settings from environment variables"""
        return cls(
            sql=SqlConfig.from_env(),
            n_plus_one=NPlusOneConfig.from_env(),
            joins=JoinOptimizationConfig.from_env(),
            hydration=HydrationConfig.from_env(),
            slow_query=SlowQueryConfig.from_env(),
            injection=InjectionConfig.from_env(),
            pipeline=PipelineConfig.from_env(),
            deduplication=DeduplicationConfig.from_env(),
            paths=PathConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    def validate(self):
        """Validate all configurations"""
        self.sql.validate()
        self.n_plus_one.validate()
        self.joins.validate()
        self.hydration.validate()
        self.slow_query.validate()
        self.injection.validate()
        self.pipeline.validate()
        self.deduplication.validate()

    def summary(self) -> str:
        """Return a formatted summary of key settings"""
        memory_limit = (
            f"{self.pipeline.memory_limit_mb}MB" if self.pipeline.memory_limit_bytes else "disabled"
        )
        return f"""
Configuration Summary:
=====================
SQL:
  Dialect:           {self.sql.dialect}

N+1 Detection:
  Threshold:         {self.n_plus_one.threshold} queries
  Proxy Multiplier:  {self.n_plus_one.proxy_multiplier}
  Warning / Crit:    {self.n_plus_one.warning_count} / {self.n_plus_one.critical_count} queries
  Time Warn / Crit:  {self.n_plus_one.warning_time_ms}ms / {self.n_plus_one.critical_time_ms}ms

JOIN Optimization:
  Recommended Max:   {self.joins.max_joins_recommended}
  Critical Max:      {self.joins.max_joins_critical}

Hydration:
  Row Threshold:     {self.hydration.row_threshold}
  Critical:          {self.hydration.critical_threshold}

Slow Query:
  Threshold:         {self.slow_query.threshold_ms}ms

Injection Risk:
  High / Critical:   {self.injection.high_risk} / {self.injection.critical_risk}

Pipeline:
  Memory Limit:      {memory_limit}
  Memory Fraction:   {self.pipeline.memory_threshold_fraction}
  Excluded Paths:    {', '.join(self.pipeline.excluded_paths) or 'none'}
  Analyzers:         {', '.join(self.pipeline.enabled_analyzers) or 'all'}

Paths:
  Log Dir:           {self.paths.log_dir}

Logging:
  Level:             {self.logging.level}
=====================
        """


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

_settings: Optional[Settings] = None


def get_settings(reload: bool = False) -> Settings:
    """
    Get or create settings singleton

    Args:
        reload: If True, reload settings from environment

    Returns:
        Settings instance
    """
    global _settings

    if _settings is None or reload:
        try:
            _settings = Settings.from_env()
            _settings.validate()
            _settings.logging.configure()

            logger.info("Configuration loaded successfully")
            logger.debug(_settings.summary())

        except Exception as e:
            logger.error(f"Failed to load configuration: {e}")
            raise

    return _settings


# ============================================================================
# INITIALIZATION
# ============================================================================

# Initialize settings on import (can be disabled by setting env var)
if not get_env_bool('SKIP_SETTINGS_INIT', False):
    try:
        get_settings()
    except Exception as e:
        logger.warning(f"Failed to initialize settings on import: {e}")
        logger.warning("Settings will be loaded on first access")
