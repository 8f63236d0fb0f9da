"""Configuration loading and validation."""

import os
import yaml
from pathlib import Path
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field, fields

from lyracopy.domain.exceptions import ConfigurationError
from lyracopy.shared.logging import get_logger, parse_level

logger = get_logger(__name__)

RESUME_POLICIES = ("restart", "resume")
TRUE_VALUES = ("true", "1", "yes", "on")


@dataclass
class LyraCopyConfig:
    """Configuration for transfer and erase jobs."""

    # Job
    source: Optional[Path] = None
    destination: Optional[Path] = None
    log_file: Path = Path("lyra_copy.jsonl")
    job_id: Optional[str] = None

    # External tools
    rsync_path: Optional[str] = None  # auto-detect
    rm_path: Optional[str] = None  # rm on PATH
    kill_grace_seconds: float = 1.0
    accepted_exit_codes: List[int] = field(default_factory=lambda: [0, 24])

    # Pipeline behaviour
    resume_policy: str = "restart"  # 'restart' or 'resume'
    dry_run_preview: bool = False
    history_limit: int = 100

    # Misc
    log_level: str = "INFO"

    def __post_init__(self):
        """Normalize types and validate configuration after initialization."""
        for name in ("source", "destination", "log_file"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, Path):
                setattr(self, name, Path(str(value)).expanduser())
        self.resume_policy = str(self.resume_policy).lower()
        self.log_level = str(self.log_level).upper()
        self._validate()

    def _validate(self):
        """Validate configuration values."""
        if self.resume_policy not in RESUME_POLICIES:
            raise ConfigurationError(f"Invalid resume_policy: {self.resume_policy}")

        if self.kill_grace_seconds <= 0:
            raise ConfigurationError(f"kill_grace_seconds must be positive, got: {self.kill_grace_seconds}")

        if self.history_limit <= 0:
            raise ConfigurationError(f"history_limit must be positive, got: {self.history_limit}")

        if not self.accepted_exit_codes or 0 not in self.accepted_exit_codes:
            raise ConfigurationError("accepted_exit_codes must include 0")

        if (self.source is None) != (self.destination is None):
            raise ConfigurationError("source and destination must be given together")

        try:
            parse_level(self.log_level)
        except ValueError as e:
            raise ConfigurationError(str(e))

    @property
    def resume_from_log(self) -> bool:
        return self.resume_policy == "resume"


class ConfigLoader:
    """Loads and validates configuration from YAML files and environment variables."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize config loader.

        Args:
            config_path: Optional path to YAML config file
        """
        self.config_path = Path(config_path) if config_path else Path("lyracopy.yaml")
        self._logger = get_logger(__name__)

    def load(self, overrides: Optional[Dict[str, Any]] = None) -> LyraCopyConfig:
        """
        Load configuration from file and environment.

        Precedence, lowest first: YAML file, environment variables,
        *overrides* (keys with a None value are ignored).

        Returns:
            LyraCopyConfig instance

        Raises:
            ConfigurationError: If configuration is invalid
        """
        config_dict: Dict[str, Any] = {}

        if self.config_path.exists():
            self._logger.info(f"Loading config from {self.config_path}")
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    yaml_config = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Cannot read {self.config_path}: {e}")
            if not isinstance(yaml_config, dict):
                raise ConfigurationError(f"{self.config_path} must contain a mapping")
            config_dict.update(yaml_config)
        else:
            self._logger.debug(f"Config file not found: {self.config_path}")

        config_dict.update(self._load_from_env())

        if overrides:
            for k, v in overrides.items():
                if v is None:
                    continue
                config_dict[k] = v

        valid_fields = {f.name for f in fields(LyraCopyConfig)}
        unknown = sorted(set(config_dict) - valid_fields)
        if unknown:
            self._logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")

        filtered_config = {k: v for k, v in config_dict.items() if k in valid_fields}

        try:
            return LyraCopyConfig(**filtered_config)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        env_config: Dict[str, Any] = {}

        # Paths; the short SRC/DST/LOG names are also honoured
        if source := os.getenv("LYRACOPY_SOURCE") or os.getenv("SRC"):
            env_config["source"] = Path(source)

        if dest := os.getenv("LYRACOPY_DEST") or os.getenv("DST"):
            env_config["destination"] = Path(dest)

        if log_file := os.getenv("LYRACOPY_LOG") or os.getenv("LOG"):
            env_config["log_file"] = Path(log_file)

        if job_id := os.getenv("LYRACOPY_JOB_ID"):
            env_config["job_id"] = job_id

        # Tools
        if rsync_path := os.getenv("LYRACOPY_RSYNC"):
            env_config["rsync_path"] = rsync_path

        if rm_path := os.getenv("LYRACOPY_RM"):
            env_config["rm_path"] = rm_path

        if grace := os.getenv("LYRACOPY_KILL_GRACE"):
            try:
                env_config["kill_grace_seconds"] = float(grace)
            except ValueError:
                self._logger.warning(f"Invalid LYRACOPY_KILL_GRACE value: {grace}")

        # Pipeline
        if limit := os.getenv("LYRACOPY_HISTORY_LIMIT"):
            try:
                env_config["history_limit"] = int(limit)
            except ValueError:
                self._logger.warning(f"Invalid LYRACOPY_HISTORY_LIMIT value: {limit}")

        if policy := os.getenv("LYRACOPY_RESUME_POLICY"):
            env_config["resume_policy"] = policy.lower()

        if preview := os.getenv("LYRACOPY_DRY_RUN_PREVIEW"):
            env_config["dry_run_preview"] = preview.lower() in TRUE_VALUES

        if level := os.getenv("LYRACOPY_LOG_LEVEL"):
            env_config["log_level"] = level

        return env_config
