"""Configuration loader and validation for reconciliation settings."""

from decimal import Decimal
from pathlib import Path
from typing import Any, Optional
import logging

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class InputConfig(BaseModel):
    """Configuration for ledger CSV parsing."""

    ledger: dict[str, Any] = Field(
        default_factory=lambda: {
            "encoding": "utf-8",
            "delimiter": ",",
            "date_format": "%Y-%m-%d",
            "column_mappings": {
                "transaction_id": "transaction_id",
                "account_id": "account_id",
                "date": "date",
                "amount": "amount",
                "type": "type",
                "description": "description",
                "deleted_at": "deleted_at",
            },
        }
    )


class PolicyConfig(BaseModel):
    """Gap resolution policy."""

    allow_quick_close: bool = True
    # Largest absolute gap that may be accepted without a ledger entry
    quick_close_limit: Decimal = Decimal("50.00")
    default_currency: str = "UAH"
    adjustment_category_ids: dict[str, Optional[str]] = Field(
        default_factory=lambda: {"income": None, "expense": None}
    )


class ProgressConfig(BaseModel):
    """Time estimates for the reconciliation workflow, in seconds."""

    seconds_per_step: dict[str, int] = Field(
        default_factory=lambda: {
            "checkpoint_creation": 60,
            "gap_analysis": 90,
            "gap_resolution": 60,
            "transaction_review": 90,
            "final_validation": 45,
            "period_closure": 30,
            "completion": 0,
        }
    )
    seconds_per_gap: int = 120


class ExcelOutputConfig(BaseModel):
    """Configuration for Excel output."""

    filename_template: str = "checkpoint_report_{date}_{time}.xlsx"


class SheetConfig(BaseModel):
    """Configuration for a report sheet."""

    enabled: bool = True
    name: str


class SheetsConfig(BaseModel):
    """Configuration for all report sheets."""

    summary: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Summary"))
    account_gaps: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Account Gaps"))
    resolutions: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Resolutions"))


class OutputConfig(BaseModel):
    """Configuration for output."""

    excel: ExcelOutputConfig = Field(default_factory=ExcelOutputConfig)
    sheets: SheetsConfig = Field(default_factory=SheetsConfig)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ReconConfig(BaseModel):
    """Main configuration model for checkpoint reconciliation."""

    input: InputConfig = Field(default_factory=InputConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    progress: ProgressConfig = Field(default_factory=ProgressConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return {
        "input": {
            "ledger": {
                "encoding": "utf-8",
                "delimiter": ",",
                "date_format": "%Y-%m-%d",
                "column_mappings": {
                    "transaction_id": "transaction_id",
                    "account_id": "account_id",
                    "date": "date",
                    "amount": "amount",
                    "type": "type",
                    "description": "description",
                    "deleted_at": "deleted_at",
                },
            },
        },
        "policy": {
            "allow_quick_close": True,
            "quick_close_limit": "50.00",
            "default_currency": "UAH",
            "adjustment_category_ids": {"income": None, "expense": None},
        },
        "progress": {
            "seconds_per_step": {
                "checkpoint_creation": 60,
                "gap_analysis": 90,
                "gap_resolution": 60,
                "transaction_review": 90,
                "final_validation": 45,
                "period_closure": 30,
                "completion": 0,
            },
            "seconds_per_gap": 120,
        },
        "output": {
            "excel": {
                "filename_template": "checkpoint_report_{date}_{time}.xlsx",
            },
            "sheets": {
                "summary": {"enabled": True, "name": "Summary"},
                "account_gaps": {"enabled": True, "name": "Account Gaps"},
                "resolutions": {"enabled": True, "name": "Resolutions"},
            },
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        },
    }


def load_config(config_path: Optional[Path] = None) -> ReconConfig:
    """
    Load configuration from a YAML file or use defaults.

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        ReconConfig object with loaded or default settings

    Raises:
        ConfigurationError: If the file is not valid YAML or fails validation
    """
    config_dict = get_default_config()

    if config_path and config_path.exists():
        logger.info(f"Loading configuration from: {config_path}")
        try:
            with open(config_path, "r") as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(user_config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

        config_dict = _deep_merge(config_dict, user_config)
        config_dict["config_file_path"] = str(config_path)
    else:
        logger.info("Using default configuration")

    try:
        return ReconConfig(**config_dict)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge on top

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def generate_default_config(output_path: Path) -> None:
    """
    Generate a default configuration file.

    Args:
        output_path: Path to write the configuration file
    """
    config_dict = get_default_config()

    yaml_content = """# Checkpoint Reconciliation Configuration
# Generated configuration file - customize as needed

"""
    yaml_content += yaml.dump(config_dict, default_flow_style=False, sort_keys=False)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")
