#!/usr/bin/env python3
"""
Configuration Manager for Incident Batch Automation
Description:
Handles configuration loading from JSON files and environment variables,
validation and default values: browser/driver settings, processing settings,
the data-driven locator strategies of the incident form and the status-code table.
"""

import os
import json
import logging
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from pathlib import Path
from dotenv import load_dotenv

from locator import ControlType, FieldLocator, LocatorStrategy, StrategyKind, DEFAULT_STRATEGY_TIMEOUT_MS
from mapping import (
    DEFAULT_ACTION_CODE,
    DEFAULT_DISPLAY_FORMAT,
    FIELD_ACTION_CODE,
    FIELD_COMMENT,
    FIELD_END_TIME,
    FIELD_START_TIME,
    FIELD_STATUS_CODE,
)
from records import ActionType

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


@dataclass
class DriverConfig:
    """Browser session and portal page settings"""
    portal_url: str = ""
    headless: bool = True
    slow_motion: int = 0  # milliseconds
    timeout: int = 30000  # milliseconds
    element_timeout: int = 10000  # milliseconds
    type_delay: int = 20  # milliseconds between keystrokes
    username_selectors: List[str] = field(default_factory=lambda: [
        'input[name="username"]',
        'input[type="email"]',
        'input[id*="user" i]',
    ])
    password_selectors: List[str] = field(default_factory=lambda: [
        'input[name="password"]',
        'input[type="password"]',
    ])
    login_submit_selectors: List[str] = field(default_factory=lambda: [
        'button[type="submit"]',
        'input[type="submit"]',
        'button:has-text("Login")',
        'button:has-text("Iniciar")',
    ])
    login_success_selector: str = '[data-page="dashboard"], nav.main-menu'
    search_input_selectors: List[str] = field(default_factory=lambda: [
        'input[name="search"]',
        'input[placeholder*="Search" i]',
        'input[placeholder*="Buscar" i]',
    ])
    search_result_template: str = 'tr:has-text("{external_id}"), a:has-text("{external_id}")'
    save_confirmation_selector: str = '.alert-success, [data-status="saved"]'


@dataclass
class ProcessingConfig:
    """Batch processing settings"""
    inter_record_delay_ms: int = 2000
    log_capacity: int = 100
    locator_timeout_ms: int = DEFAULT_STRATEGY_TIMEOUT_MS
    date_display_format: str = DEFAULT_DISPLAY_FORMAT
    default_action_type: str = ActionType.OTHER.value
    action_code: str = DEFAULT_ACTION_CODE
    log_level: str = "INFO"
    enable_performance_monitoring: bool = True


@dataclass
class FormLayoutConfig:
    """Locator strategies for every control of the incident form"""
    fields: Dict[str, FieldLocator] = field(default_factory=dict)
    open_form_strategies: List[LocatorStrategy] = field(default_factory=list)
    save_strategies: List[LocatorStrategy] = field(default_factory=list)


@dataclass
class IncidentAutomationConfig:
    """Complete configuration for the incident automation"""
    driver: DriverConfig = field(default_factory=DriverConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    form_layout: FormLayoutConfig = field(default_factory=FormLayoutConfig)
    status_codes: Dict[str, str] = field(default_factory=dict)

    def status_code_table(self) -> Dict[ActionType, str]:
        return {ActionType(k): v for k, v in self.status_codes.items()}

    @property
    def default_action_type(self) -> ActionType:
        return ActionType(self.processing.default_action_type)


class ConfigurationManager:
    """Manages configuration loading, validation, and default values"""

    def __init__(self, config_dir: str = "config"):
        self.config_dir = Path(config_dir)
        self.logger = logging.getLogger(f"{__name__}.ConfigurationManager")

        self.main_config_file = self.config_dir / "automation_config.json"

    def load_configuration(self, config_file: Optional[str] = None) -> IncidentAutomationConfig:
        """
        Load configuration from a JSON file, then environment variables.
        Raises ValueError when the merged configuration is invalid.
        """
        self.logger.info("Loading configuration from JSON files and environment variables")

        config = self._load_from_json_file(Path(config_file) if config_file else self.main_config_file)
        config = self._load_from_environment(config)
        self._validate_configuration(config)
        config = self._apply_default_values(config)

        self.logger.info("Configuration loaded successfully")
        return config

    def get_default_configuration(self) -> IncidentAutomationConfig:
        """Built-in defaults only, ignoring files and environment"""
        return self._apply_default_values(IncidentAutomationConfig())

    def _load_from_json_file(self, config_path: Path) -> IncidentAutomationConfig:
        """Load configuration from a single JSON file; missing or broken files yield defaults"""
        if not config_path.exists():
            self.logger.debug(f"Configuration file not found: {config_path}, using defaults")
            return IncidentAutomationConfig()

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = json.load(f)
            return self._parse_config_data(config_data)
        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in configuration file {config_path}: {e}")
            return IncidentAutomationConfig()
        except (OSError, KeyError, TypeError, ValueError) as e:
            self.logger.error(f"Error reading configuration file {config_path}: {e}")
            return IncidentAutomationConfig()

    def _parse_config_data(self, config_data: Dict[str, Any]) -> IncidentAutomationConfig:
        """Parse configuration data from JSON"""
        config = IncidentAutomationConfig()

        if 'driver' in config_data:
            config.driver = DriverConfig(**{
                k: v for k, v in config_data['driver'].items()
                if k in DriverConfig.__dataclass_fields__
            })

        if 'processing' in config_data:
            config.processing = ProcessingConfig(**{
                k: v for k, v in config_data['processing'].items()
                if k in ProcessingConfig.__dataclass_fields__
            })

        if 'form_layout' in config_data:
            config.form_layout = self._parse_form_layout(
                config_data['form_layout'], config.processing.locator_timeout_ms
            )

        if 'status_codes' in config_data:
            config.status_codes = {
                str(k).lower(): str(v) for k, v in config_data['status_codes'].items()
            }

        return config

    def _parse_form_layout(self, layout_data: Dict[str, Any], timeout_ms: int) -> FormLayoutConfig:
        """Parse the form layout section: fields, open-form and save candidates"""
        layout = FormLayoutConfig()

        for field_name, field_data in layout_data.get('fields', {}).items():
            try:
                layout.fields[field_name] = FieldLocator(
                    name=field_name,
                    control=ControlType(field_data.get('control', 'text')),
                    strategies=[
                        LocatorStrategy.from_dict(s, timeout_ms) for s in field_data.get('strategies', [])
                    ],
                )
            except (KeyError, ValueError) as e:
                self.logger.warning(f"Error parsing locator config for {field_name}: {e}")

        layout.open_form_strategies = [
            LocatorStrategy.from_dict(s, timeout_ms) for s in layout_data.get('open_form', [])
        ]
        layout.save_strategies = [
            LocatorStrategy.from_dict(s, timeout_ms) for s in layout_data.get('save', [])
        ]
        return layout

    def _load_from_environment(self, config: IncidentAutomationConfig) -> IncidentAutomationConfig:
        """Override configuration with environment variables"""
        config.driver.portal_url = os.getenv('PORTAL_URL', config.driver.portal_url)
        config.driver.headless = self._get_env_bool('AUTOMATION_HEADLESS', config.driver.headless)
        config.driver.slow_motion = self._get_env_int('AUTOMATION_SLOW_MOTION', config.driver.slow_motion)
        config.driver.timeout = self._get_env_int('AUTOMATION_TIMEOUT', config.driver.timeout)

        config.processing.inter_record_delay_ms = self._get_env_int(
            'INTER_RECORD_DELAY_MS', config.processing.inter_record_delay_ms)
        config.processing.log_capacity = self._get_env_int('LOG_CAPACITY', config.processing.log_capacity)
        config.processing.locator_timeout_ms = self._get_env_int(
            'LOCATOR_TIMEOUT_MS', config.processing.locator_timeout_ms)
        config.processing.date_display_format = os.getenv(
            'DATE_DISPLAY_FORMAT', config.processing.date_display_format)
        config.processing.action_code = os.getenv('ACTION_CODE', config.processing.action_code)
        config.processing.log_level = os.getenv('AUTOMATION_LOG_LEVEL', config.processing.log_level).upper()

        return config

    def _validate_configuration(self, config: IncidentAutomationConfig) -> None:
        """Validate configuration and raise errors for critical invalid values"""
        errors = []

        if config.driver.timeout < 1000:
            errors.append("AUTOMATION_TIMEOUT must be at least 1000ms")

        if config.processing.inter_record_delay_ms < 0:
            errors.append("INTER_RECORD_DELAY_MS must be non-negative")

        if config.processing.log_capacity < 1:
            errors.append("LOG_CAPACITY must be at least 1")

        if config.processing.locator_timeout_ms <= 0:
            errors.append("LOCATOR_TIMEOUT_MS must be positive")

        if config.processing.log_level not in VALID_LOG_LEVELS:
            errors.append(f"AUTOMATION_LOG_LEVEL must be one of: {', '.join(VALID_LOG_LEVELS)}")

        valid_actions = [a.value for a in ActionType]
        if config.processing.default_action_type not in valid_actions:
            errors.append(f"default_action_type must be one of: {', '.join(valid_actions)}")
        for key in config.status_codes:
            if key not in valid_actions:
                errors.append(f"Unknown action type in status_codes: {key}")

        if errors:
            error_message = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
            self.logger.error(error_message)
            raise ValueError(error_message)

        self.logger.info("Configuration validation passed")

    def _apply_default_values(self, config: IncidentAutomationConfig) -> IncidentAutomationConfig:
        """Fill in the default form layout for anything the configuration left out"""
        defaults = self._get_default_form_layout(config.processing.locator_timeout_ms)

        for field_name, locator in defaults.fields.items():
            if field_name not in config.form_layout.fields or not config.form_layout.fields[field_name].strategies:
                config.form_layout.fields[field_name] = locator
        if not config.form_layout.open_form_strategies:
            config.form_layout.open_form_strategies = defaults.open_form_strategies
        if not config.form_layout.save_strategies:
            config.form_layout.save_strategies = defaults.save_strategies

        self.logger.debug("Default values applied to configuration")
        return config

    def _get_default_form_layout(self, timeout_ms: int) -> FormLayoutConfig:
        """Default locator strategies, cheapest and most specific first"""
        def css(value):
            return LocatorStrategy(StrategyKind.CSS, value, timeout_ms)

        def placeholder(value):
            return LocatorStrategy(StrategyKind.PLACEHOLDER, value, timeout_ms)

        def label(value):
            return LocatorStrategy(StrategyKind.LABEL, value, timeout_ms)

        def text(value):
            return LocatorStrategy(StrategyKind.TEXT, value, timeout_ms)

        return FormLayoutConfig(
            fields={
                FIELD_STATUS_CODE: FieldLocator(FIELD_STATUS_CODE, ControlType.SELECT, [
                    css('select[name="statusCode"]'),
                    css('[data-field="status-code"]'),
                    label('Status Code'),
                    label('Código de estado'),
                ]),
                FIELD_START_TIME: FieldLocator(FIELD_START_TIME, ControlType.TEXT, [
                    css('input[name="startTime"]'),
                    placeholder('Start Time'),
                    label('Start Time'),
                    label('Fecha inicio'),
                ]),
                FIELD_END_TIME: FieldLocator(FIELD_END_TIME, ControlType.TEXT, [
                    css('input[name="endTime"]'),
                    placeholder('End Time'),
                    label('End Time'),
                    label('Fecha fin'),
                ]),
                FIELD_COMMENT: FieldLocator(FIELD_COMMENT, ControlType.TEXT, [
                    css('textarea[name="comment"]'),
                    placeholder('Comment'),
                    label('Comment'),
                    label('Comentario'),
                ]),
                FIELD_ACTION_CODE: FieldLocator(FIELD_ACTION_CODE, ControlType.SELECT, [
                    css('select[name="actionCode"]'),
                    css('[data-field="action-code"]'),
                    label('Action Code'),
                ]),
            },
            open_form_strategies=[
                css('button[data-action="new-event"]'),
                text('New Event'),
                text('Nuevo evento'),
                css('a:has-text("Create Event")'),
            ],
            save_strategies=[
                css('button[data-action="save"]'),
                css('button[type="submit"]'),
                text('Save'),
                text('Guardar'),
            ],
        )

    def get_env_credentials(self) -> Dict[str, str]:
        """Portal credentials from the environment (.env supported)"""
        return {
            'username': os.getenv('PORTAL_USERNAME', '').strip(),
            'password': os.getenv('PORTAL_PASSWORD', ''),
        }

    def _get_env_bool(self, env_var: str, default: bool) -> bool:
        """Get boolean value from environment variable"""
        value = os.getenv(env_var)
        if value is None:
            return default
        return value.lower() in ('true', '1', 'yes', 'on')

    def _get_env_int(self, env_var: str, default: int) -> int:
        """Get integer value from environment variable"""
        value = os.getenv(env_var)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            self.logger.warning(f"Invalid integer value for {env_var}: {value}, using default: {default}")
            return default
