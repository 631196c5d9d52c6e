#!/usr/bin/env python3
"""
Configuration Manager for the BOQ rate filler using Pydantic models.
Manages matching thresholds, header synonyms and batch settings.
"""

import json
import os
from typing import Optional, Union
from pathlib import Path
import logging
from pydantic import ValidationError
from models.config_models import (
    RateFillConfigs,
    ConfigSection,
    ConfigUpdateRequest,
    MatchingConfig,
    BatchConfig
)


class ConfigManager:
    """Manages rate filler configuration using Pydantic models"""

    def __init__(self, config_file_path: Optional[str] = None):
        self.logger = logging.getLogger(self.__class__.__name__)

        # Default config file location
        if config_file_path is None:
            self.config_dir = Path.home() / 'AppData' / 'Roaming' / 'BOQRateFill'
            os.makedirs(self.config_dir, exist_ok=True)
            self.config_file = self.config_dir / 'rate_fill_config.json'
        else:
            self.config_file = Path(config_file_path)

        self.config = self._load_config()

    def _load_config(self) -> RateFillConfigs:
        """Load configuration from file, create default if doesn't exist"""
        try:
            if self.config_file.exists():
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    config_data = json.load(f)
                config = RateFillConfigs(**config_data)
                self.logger.info(f"Loaded configuration from {self.config_file}")
                return config
        except (OSError, ValueError, ValidationError) as e:
            self.logger.error(f"Error loading config file: {e}")

        # Return default config and save it
        default_config = RateFillConfigs.get_default_config()
        self._save_config(default_config)
        self.logger.info("Created default configuration")
        return default_config

    def _save_config(self, config: RateFillConfigs) -> None:
        """Save configuration to file"""
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(config.model_dump(mode='json'), f, indent=2, ensure_ascii=False)
            self.logger.info(f"Configuration saved to {self.config_file}")
        except OSError as e:
            self.logger.error(f"Error saving config file: {e}")
            raise

    def get_section(self, section: ConfigSection) -> Union[MatchingConfig, BatchConfig]:
        """Get configuration for one section"""
        return getattr(self.config, section.value)

    @property
    def matching(self) -> MatchingConfig:
        return self.config.matching

    @property
    def batch(self) -> BatchConfig:
        return self.config.batch

    def get_all_configs(self) -> RateFillConfigs:
        """Get the complete configuration"""
        return self.config

    def update_config(self, update_request: ConfigUpdateRequest) -> bool:
        """
        Update one section; values are merged into the current section and
        validated as a whole, so an invalid value leaves the config untouched
        """
        section = update_request.section.value
        try:
            current_config = getattr(self.config, section)
            unknown = [field for field in update_request.values if field not in type(current_config).model_fields]
            if unknown:
                self.logger.error(f"Unknown {section} settings: {', '.join(unknown)}")
                return False

            merged = current_config.model_dump()
            merged.update(update_request.values)
            updated = type(current_config).model_validate(merged)

            self.config = self.config.model_copy(update={section: updated})
            self._save_config(self.config)
            for field, value in update_request.values.items():
                self.logger.info(f"Updated {section}.{field} to {value}")
            return True

        except (ValidationError, OSError) as e:
            self.logger.error(f"Error updating config: {e}")
            return False

    def reset_to_defaults(self) -> bool:
        """Reset configuration to defaults"""
        try:
            self.config = RateFillConfigs.get_default_config()
            self._save_config(self.config)
            self.logger.info("Configuration reset to defaults")
            return True
        except OSError as e:
            self.logger.error(f"Error resetting config to defaults: {e}")
            return False

    def get_config_summary(self) -> dict:
        """Get a summary of current configuration for display"""
        matching = self.config.matching
        return {
            "matching": {
                "header_scan_rows": matching.header_scan_rows,
                "enable_vector_fallback": matching.enable_vector_fallback,
                "thresholds": matching.thresholds.model_dump(),
                "weights": matching.weights.model_dump()
            },
            "batch": self.config.batch.model_dump()
        }
