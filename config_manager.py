# config_manager.py

import configparser
import os
from dotenv import load_dotenv
from typing import Any, Dict, List, NamedTuple, Optional
import logging

from pydantic import BaseModel, EmailStr, Field, ValidationError

from models import BUSINESS_UNIT_PLATFORMS, BusinessUnit, FilterConfig, Platform

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """A setup defect that makes a run meaningless (missing credentials, unconfigured required fields)."""


class PlatformCredentials(NamedTuple):
    platform: Platform
    base_url: str
    api_key: Optional[str]


class EmailSettings(BaseModel):
    recipients: List[EmailStr] = Field(default_factory=list)
    subject_prefix: str = "Missing Fields Report"


DEFAULT_BASE_URLS: Dict[Platform, str] = {
    Platform.INCIDENT_IO: "https://api.incident.io",
    Platform.FIREHYDRANT: "https://api.firehydrant.io",
}

BASE_URL_ENV_VARS: Dict[Platform, str] = {
    Platform.INCIDENT_IO: "INCIDENTIO_BASE_URL",
    Platform.FIREHYDRANT: "FIREHYDRANT_BASE_URL",
}

API_KEY_ENV_VARS: Dict[BusinessUnit, str] = {
    BusinessUnit.SQUARE: "INCIDENTIO_SQUARE_API_KEY",
    BusinessUnit.CASH: "INCIDENTIO_CASH_API_KEY",
    BusinessUnit.AFTERPAY: "FIREHYDRANT_AFTERPAY_API_KEY",
}

# config.ini section names per platform
PLATFORM_KEYS: Dict[Platform, str] = {
    Platform.INCIDENT_IO: "IncidentIO",
    Platform.FIREHYDRANT: "FireHydrant",
}

# [Filters] option -> FilterConfig key (the flat camelCase settings vocabulary)
FILTER_OPTIONS: Dict[str, str] = {
    "LookbackDays": "lookbackDays",
    "IncludeModes": "includeModes",
    "ExcludeTypeSubstrings": "excludeTypeSubstrings",
    "EnableSeverityFiltering": "enableSeverityFiltering",
    "IncidentIOSeverities": "incidentioSeverities",
    "FireHydrantSeverities": "firehydrantSeverities",
    "IncludeInternalImpact": "includeInternalImpact",
    "CustomStartDate": "customStartDate",
    "CustomEndDate": "customEndDate",
    "DateRangePreset": "dateRangePreset",
    "EmailFocusDays": "emailFocusDays",
    "BucketBoundaries": "bucketBoundaries",
}


class ConfigManager:
    """
    Manages loading and accessing configuration from .env (for secrets)
    and config.ini (for filters, required fields and field aliases).
    """
    def __init__(self, ini_file_path: str = 'config.ini', env_file_path: Optional[str] = None):
        dotenv_path = env_file_path if env_file_path else os.path.join(os.path.dirname(__file__), '.env')
        if not os.path.exists(dotenv_path):
            logger.warning(f".env file not found at {dotenv_path}. Secrets might not be loaded if not set in environment.")
        load_dotenv(dotenv_path=dotenv_path)

        self.ini_file_path = ini_file_path
        self.config = configparser.ConfigParser(interpolation=None)
        # Keep option case: field names and aliases are case-sensitive.
        self.config.optionxform = str
        if not os.path.exists(ini_file_path):
            logger.error(f"Configuration file {ini_file_path} not found.")
            raise FileNotFoundError(f"Configuration file {ini_file_path} not found.")
        self.config.read(ini_file_path)
        logger.info(f"Successfully loaded configuration from {ini_file_path}")

        # --- General Settings ---
        self.agent_name: str = self.config.get('General', 'AgentName', fallback='MissingFieldsReporter')
        self.daily_run_time: str = self.config.get('General', 'DailyRunTime', fallback='08:00')
        self.weekly_summary_day: str = self.config.get('General', 'WeeklySummaryDay', fallback='monday').lower()
        self.weekly_summary_time: str = self.config.get('General', 'WeeklySummaryTime', fallback='09:00')
        self.report_directory: str = self.config.get('General', 'ReportDirectory', fallback='reports')

        # --- SMTP (from .env) ---
        self.smtp_server: Optional[str] = os.getenv('SMTP_SERVER')
        self.smtp_port: int = int(os.getenv('SMTP_PORT', 587))
        self.smtp_username: Optional[str] = os.getenv('SMTP_USERNAME')
        self.smtp_password: Optional[str] = os.getenv('SMTP_PASSWORD')
        self.sender_email: Optional[str] = os.getenv('SENDER_EMAIL')

        # --- Platform credentials (from .env) ---
        self.platform_credentials: Dict[BusinessUnit, PlatformCredentials] = {
            unit: PlatformCredentials(
                platform=platform,
                base_url=os.getenv(BASE_URL_ENV_VARS[platform], DEFAULT_BASE_URLS[platform]).rstrip('/'),
                api_key=os.getenv(API_KEY_ENV_VARS[unit]),
            )
            for unit, platform in BUSINESS_UNIT_PLATFORMS.items()
        }

        # --- Filters, required fields and aliases (from config.ini) ---
        self.filter_settings: Dict[str, Any] = self._load_filter_settings()
        self.filter_config: FilterConfig = self.build_filter_config()
        self.required_fields: Dict[Platform, List[str]] = self._load_required_fields()
        self.field_aliases: Dict[Platform, Dict[str, List[str]]] = {
            platform: self._load_keywords_from_section(f"{key}FieldAliases")
            for platform, key in PLATFORM_KEYS.items()
        }

        # --- Email ---
        self.email_settings: EmailSettings = EmailSettings(
            recipients=self._parse_list_string(self.config.get('Email', 'Recipients', fallback='')),
            subject_prefix=self.config.get('Email', 'SubjectPrefix', fallback='Missing Fields Report'),
        )

        self._validate_essential_configs()

    def _parse_list_string(self, list_string: str) -> List[str]:
        """Helper to parse a comma-separated string into a list, preserving order and case."""
        return [item.strip() for item in list_string.split(',') if item.strip()]

    def _load_keywords_from_section(self, section_name: str) -> Dict[str, List[str]]:
        """
        Loads sections where keys are logical names and values are comma-separated
        lists, e.g. {'Causal Type': ['Causal Type', 'Root Cause Type']}.
        """
        data_dict = {}
        if self.config.has_section(section_name):
            for item_key, values_str in self.config.items(section_name):
                data_dict[item_key] = self._parse_list_string(values_str)
        else:
            logger.warning(f"Configuration section [{section_name}] not found in {self.ini_file_path}.")
        return data_dict

    def _load_filter_settings(self) -> Dict[str, Any]:
        """Flattens [Filters] into the camelCase key/value vocabulary FilterConfig accepts."""
        settings: Dict[str, Any] = {}
        if not self.config.has_section('Filters'):
            logger.warning(f"Configuration section [Filters] not found in {self.ini_file_path}. Using defaults.")
            return settings

        for option, key in FILTER_OPTIONS.items():
            if self.config.has_option('Filters', option):
                settings[key] = self.config.get('Filters', option)
        for option in ('EnableSeverityFiltering', 'IncludeInternalImpact'):
            if self.config.has_option('Filters', option):
                settings[FILTER_OPTIONS[option]] = self.config.getboolean('Filters', option)

        statuses = {}
        for platform, key in PLATFORM_KEYS.items():
            option = f"{key}Statuses"
            if self.config.has_option('Filters', option):
                statuses[platform.value] = self.config.get('Filters', option)
        settings['includeStatuses'] = statuses
        return settings

    def build_filter_config(self, **overrides: Any) -> FilterConfig:
        """
        Validates the [Filters] settings (plus any overrides, e.g. a one-off
        custom date range) into a FilterConfig.
        """
        settings = {**self.filter_settings, **overrides}
        try:
            return FilterConfig.model_validate(settings)
        except ValidationError as e:
            logger.error(f"Invalid [Filters] configuration in {self.ini_file_path}: {e}")
            raise ConfigurationError(f"Invalid [Filters] configuration: {e}") from e

    def _load_required_fields(self) -> Dict[Platform, List[str]]:
        required: Dict[Platform, List[str]] = {}
        for platform, key in PLATFORM_KEYS.items():
            fields = self._parse_list_string(self.config.get('RequiredFields', key, fallback=''))
            if fields:
                required[platform] = fields
        return required

    def require_platform_credentials(self) -> Dict[BusinessUnit, PlatformCredentials]:
        """
        Precondition for a run: every business unit must know where and how to fetch.
        Raises ConfigurationError naming every unit that cannot.
        """
        missing = [
            f"{unit.value} ({API_KEY_ENV_VARS[unit]})"
            for unit, credentials in self.platform_credentials.items()
            if not credentials.api_key or not credentials.base_url
        ]
        if missing:
            raise ConfigurationError(f"Missing platform credentials for: {', '.join(missing)}")
        return self.platform_credentials

    def _validate_essential_configs(self):
        """Validates that essential configurations are present."""
        essential_env_vars = {
            "SMTP Server": self.smtp_server, "SMTP Username": self.smtp_username,
            "SMTP Password": self.smtp_password, "Sender Email": self.sender_email,
        }
        for name, var in essential_env_vars.items():
            if not var:
                logger.warning(f"Essential environment variable for '{name}' is not set. Functionality relying on it may fail.")

        for unit, credentials in self.platform_credentials.items():
            if not credentials.api_key:
                logger.warning(f"No API key set for {unit.value} ({API_KEY_ENV_VARS[unit]}). Runs will abort until it is.")

        for platform in Platform:
            if platform not in self.required_fields:
                logger.warning(f"No required fields configured for {platform.value} in [RequiredFields]. "
                               f"Classifying its incidents will fail.")
        if not self.email_settings.recipients:
            logger.warning("No recipients configured in [Email] section. Report emails will not be sent.")
