"""Settings library for the client configuration.

Provides:
    - Schema validation and enforcement for the client.json structure.
    - Loading, saving, reverting, and managing application settings.
    - Application paths for the config and local storage files.
"""

import json
import logging
import pathlib
import shutil
import urllib.parse
from typing import Dict, Any, Optional, List

from PySide6 import QtCore

from ..data.model import Category, Period
from ..status import status
from . import locale

app_name: str = 'ExpenseClient'

DEFAULT_BASE_URL: str = 'https://expensify-api-8g94.onrender.com/api/v1'

CATEGORIES: List[str] = [c.value for c in Category]
PERIODS: List[str] = [p.value for p in Period]
THEMES: List[str] = ['light', 'dark']

API_KEYS: List[str] = ['base_url', 'timeout']

METADATA_KEYS: List[str] = [
    'name',
    'locale',
    'default_period',
    'default_category',
    'notifications_enabled',
    'theme',
    'biometric_enabled',
]

CLIENT_SCHEMA: Dict[str, Any] = {
    'api': {
        'type': dict,
        'required': True,
        'required_keys': API_KEYS,
        'item_schema': {
            'base_url': {'type': str, 'required': True, 'format': 'url'},
            'timeout': {'type': int, 'required': True, 'format': 'positive'},
        }
    },
    'metadata': {
        'type': dict,
        'required': True,
        'required_keys': METADATA_KEYS,
        'item_schema': {
            'name': {'type': str, 'required': True},
            'locale': {'type': str, 'required': True, 'allowed_values': locale.LOCALE_MAP},
            'default_period': {'type': str, 'required': True, 'allowed_values': PERIODS},
            'default_category': {'type': str, 'required': True, 'allowed_values': CATEGORIES},
            'notifications_enabled': {'type': bool, 'required': True},
            'theme': {'type': str, 'required': True, 'allowed_values': THEMES},
            'biometric_enabled': {'type': bool, 'required': True},
        }
    },
}


def is_valid_url(value: str) -> bool:
    """Check if a string is an absolute http(s) URL with a host.

    Args:
        value (str): URL string to validate.

    Returns:
        bool: True if value is an http or https URL, False otherwise.
    """
    try:
        parsed = urllib.parse.urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def _validate_section(section_name: str, section: Dict[str, Any], specs: Dict[str, Any]) -> None:
    """Validate one section of the client configuration against its item schema.

    Args:
        section_name: Name of the section, used in error messages.
        section: The section data.
        specs: Schema dict containing 'required_keys' and 'item_schema'.

    Raises:
        TypeError: If the section is not a dict or a field has the wrong type.
        ValueError: If a required field is missing or fails a format or value constraint.
    """
    logging.debug(f'Validating "{section_name}" section.')
    if not isinstance(section, dict):
        msg: str = f'"{section_name}" must be a dict.'
        logging.error(msg)
        raise TypeError(msg)

    missing = [k for k in specs.get('required_keys', []) if k not in section]
    if missing:
        msg = f'"{section_name}" is missing keys: {missing}.'
        logging.error(msg)
        raise ValueError(msg)

    for field, field_specs in specs['item_schema'].items():
        if field not in section:
            continue
        value = section[field]

        # bool is an int subclass, but never a valid int value here
        if field_specs['type'] is int and isinstance(value, bool):
            msg = f'"{section_name}" field "{field}" must be {int}, got {bool}.'
            logging.error(msg)
            raise TypeError(msg)
        if not isinstance(value, field_specs['type']):
            msg = (
                f'"{section_name}" field "{field}" must be {field_specs["type"]}, '
                f'got {type(value)}.'
            )
            logging.error(msg)
            raise TypeError(msg)

        allowed = field_specs.get('allowed_values')
        if allowed and value not in allowed:
            msg = f'"{section_name}" field "{field}" must be one of {allowed}, got "{value}".'
            logging.error(msg)
            raise ValueError(msg)

        fmt = field_specs.get('format')
        if fmt == 'url' and not is_valid_url(value):
            msg = f'"{section_name}" field "{field}" must be an http(s) URL, got "{value}".'
            logging.error(msg)
            raise ValueError(msg)
        if fmt == 'positive' and value <= 0:
            msg = f'"{section_name}" field "{field}" must be positive, got {value}.'
            logging.error(msg)
            raise ValueError(msg)


class ConfigPaths:
    """Manage application file paths and ensure default templates and directories exist.

    Paths for the packaged templates, the user's config file and the local storage
    database. Missing directories are created and the default client config is copied
    into the user data directory.
    """

    def __init__(self) -> None:
        QtCore.QCoreApplication.setApplicationName(app_name)
        QtCore.QCoreApplication.setOrganizationName('')
        logging.debug(f'Setting application name: {app_name}')

        # Get the app data directory
        p = QtCore.QStandardPaths.writableLocation(QtCore.QStandardPaths.AppDataLocation)
        app_data_dir = pathlib.Path(p)
        logging.debug(f'Using app data directory: {app_data_dir}')

        self.template_dir: pathlib.Path = pathlib.Path(__file__).parent.parent / 'config'
        self.client_template: pathlib.Path = self.template_dir / 'client.json.template'

        self.app_data_dir: pathlib.Path = app_data_dir
        self.config_dir: pathlib.Path = app_data_dir / 'config'
        self.db_dir: pathlib.Path = self.config_dir / 'db'

        self.client_path: pathlib.Path = self.config_dir / 'client.json'
        self.store_path: pathlib.Path = self.db_dir / 'store.db'

        self._verify_and_prepare()

    def _verify_and_prepare(self) -> None:
        """Verify templates exist and prepare configuration directories and files.

        Raises:
            FileNotFoundError: If the template directory or the client template is missing.
        """
        logging.debug(f'Verifying required directories and templates in {self.template_dir}')
        if not self.template_dir.exists():
            msg: str = f'Missing template directory: {self.template_dir}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        if not self.client_template.exists():
            msg = f'Missing client template: {self.client_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)

        for directory in (self.config_dir, self.db_dir):
            if not directory.exists():
                logging.debug(f'Creating directory: {directory}')
                directory.mkdir(parents=True, exist_ok=True)

        # Ensure a valid config exists even if we haven't yet set it up
        if not self.client_path.exists():
            logging.debug(f'Copying default client config from template to {self.client_path}')
            shutil.copy(self.client_template, self.client_path)

    def revert_client_to_template(self) -> None:
        """Restore client.json from the default template file.

        Raises:
            FileNotFoundError: If the client template file is missing.
        """
        logging.debug(f'Reverting client config to template: {self.client_template}')
        if not self.client_template.exists():
            msg: str = f'Client template not found: {self.client_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        shutil.copy(self.client_template, self.client_path)


class SettingsAPI(ConfigPaths):
    """
    Provides an interface to get/set/revert/save client.json sections.
    """

    def __init__(self, client_path: Optional[str] = None) -> None:
        """Initialize SettingsAPI and load the client data.

        Args:
            client_path: Optional path to a custom client.json file.
        """
        super().__init__()

        self.client_path: pathlib.Path = pathlib.Path(client_path) if client_path else self.client_path

        self._signals_blocked: bool = False

        self.client_data: Dict[str, Any] = {}
        for k in CLIENT_SCHEMA.keys():
            self.client_data[k] = {}

        self.load_client()

    def __getitem__(self, key: str) -> Any:
        """Retrieve a metadata value using dictionary-style access.

        Args:
            key: Metadata key to retrieve.

        Returns:
            Value stored for the metadata key, or None if it has the wrong type.

        Raises:
            KeyError: If key is not in METADATA_KEYS.
        """
        if key not in METADATA_KEYS:
            raise KeyError(f'Invalid metadata key: {key}, must be one of {METADATA_KEYS}')

        _type = CLIENT_SCHEMA['metadata']['item_schema'][key]['type']
        v = self.client_data.get('metadata', {}).get(key)

        if not isinstance(v, _type):
            logging.error(f'Metadata key "{key}" is not of type {_type}, got {type(v)}.')
            return None

        return v

    def __setitem__(self, key: str, value: Any) -> None:
        """Assign a metadata value using dictionary-style access and persist it.

        Args:
            key: Metadata key to set.
            value: Value to assign to the metadata key.

        Raises:
            KeyError: If key is not in METADATA_KEYS.
            ValueError: If the value cannot be converted or is not an allowed value.
        """
        if key not in METADATA_KEYS:
            raise KeyError(f'Invalid metadata key: {key}, must be one of {METADATA_KEYS}')

        field_specs = CLIENT_SCHEMA['metadata']['item_schema'][key]
        _type = field_specs['type']

        if not isinstance(value, _type):
            logging.warning(f'Metadata key "{key}" is not of type {_type}, got {type(value)}.')

            # Try to convert to the expected type
            if _type == str:
                value = str(value)
            elif _type == bool:
                value = bool(value)

        allowed = field_specs.get('allowed_values')
        if allowed and value not in allowed:
            msg = f'Metadata key "{key}" must be one of {allowed}, got "{value}".'
            logging.error(msg)
            raise ValueError(msg)

        self.client_data['metadata'][key] = value
        self.save_section('metadata')

        if self._signals_blocked:
            return

        from ..ui.actions import signals
        signals.metadataChanged.emit(key, value)

    def block_signals(self, v: bool) -> None:
        """Enable or disable emission of configuration change signals.

        Args:
            v: True to block signals, False to allow signals to emit.
        """
        self._signals_blocked = v

    def load_client(self) -> Dict[str, Any]:
        """Load client.json from disk and validate against schema.

        Returns:
            The loaded client data dictionary.

        Raises:
            status.ClientConfigNotFoundException: If client.json file is missing.
            status.ClientConfigInvalidException: If JSON parsing or validation fails.
        """
        logging.debug(f'Loading client config from "{self.client_path}"')
        if not self.client_path.exists():
            raise status.ClientConfigNotFoundException(f'{self.client_path} does not exist.')

        try:
            with self.client_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
            self.validate_client_data(data=data)
        except status.ClientConfigInvalidException:
            raise
        except (ValueError, TypeError, RuntimeError) as ex:
            raise status.ClientConfigInvalidException(str(ex)) from ex

        self.client_data = data
        return self.client_data

    def validate_client_data(self, data: Optional[Dict[str, Any]] = None) -> None:
        """Validate client data against the defined CLIENT_SCHEMA.

        Args:
            data (dict, optional): Client data to validate. Defaults to self.client_data.

        Raises:
            RuntimeError: If data is empty.
            status.ClientConfigInvalidException: If a required section is missing or has the wrong type.
            TypeError, ValueError: If a section's fields fail validation.
        """
        if data is None:
            data = self.client_data
        if not data:
            raise RuntimeError('Client data is empty.')

        logging.debug('Validating client data against schema.')
        for field, specs in CLIENT_SCHEMA.items():
            if specs.get('required') and field not in data:
                raise status.ClientConfigInvalidException(f'Missing required field: {field}')

            if field not in data:
                continue

            if not isinstance(data[field], specs['type']):
                raise status.ClientConfigInvalidException(
                    f'Field "{field}" must be {specs["type"]}, got {type(data[field])}.'
                )

            _validate_section(field, data[field], specs)

        logging.debug('Client data is valid.')

    def get_section(self, section_name: str) -> Dict[str, Any]:
        """Retrieve a copy of configuration data for a section.

        Args:
            section_name: Section name, a key of CLIENT_SCHEMA.

        Returns:
            A copied dict of the requested section data.

        Raises:
            KeyError: If section_name is not in client_data.
        """
        return self.client_data[section_name].copy()

    def set_section(self, section_name: str, new_data: Dict[str, Any]) -> None:
        """Replace and persist a configuration section.

        Args:
            section_name: Section to update.
            new_data: New data dict for the section.

        Raises:
            ValueError: If section_name is unrecognized or the data fails validation.
            TypeError: If the data has the wrong types.
        """
        if section_name not in self.client_data:
            msg: str = f'Unknown section_name for set: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        current_section_data: Dict[str, Any] = self.client_data[section_name].copy()

        self.client_data[section_name] = new_data
        try:
            self.validate_client_data()
            self.save_section(section_name)
        except (ValueError, TypeError, status.ClientConfigInvalidException) as e:
            logging.error(f'Validation error on set_section("{section_name}"): {e}')
            self.client_data[section_name] = current_section_data
            raise

        if not self._signals_blocked:
            from ..ui.actions import signals
            signals.configSectionChanged.emit(section_name)

    def revert_section(self, section_name: str) -> None:
        """Revert a configuration section to its template default and save.

        Args:
            section_name: Section to revert.

        Raises:
            ValueError: If section_name is invalid or not present in the template.
        """
        if section_name not in self.client_data:
            msg: str = f'Unknown section_name for revert: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.client_template.open('r', encoding='utf-8') as f:
            template_data: Dict[str, Any] = json.load(f)

        if section_name not in template_data:
            msg = f'No template-based revert logic for section "{section_name}".'
            logging.error(msg)
            raise ValueError(msg)

        self.client_data[section_name] = template_data[section_name]
        self.save_section(section_name)

        if not self._signals_blocked:
            from ..ui.actions import signals
            signals.configSectionChanged.emit(section_name)

    def save_section(self, section_name: str) -> None:
        """Persist a single configuration section to client.json.

        Args:
            section_name: The section to save.

        Raises:
            ValueError: If section_name is not recognized.
        """
        if section_name not in self.client_data:
            msg: str = f'Unknown section_name for save: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        try:
            with self.client_path.open('r', encoding='utf-8') as f:
                original_data: Dict[str, Any] = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logging.warning(f'Could not read "{self.client_path}" before saving, rewriting it: {e}')
            original_data = {}

        new_data: Dict[str, Any] = original_data.copy()
        new_data[section_name] = self.client_data[section_name]

        logging.debug(f'Saving section "{section_name}" to "{self.client_path}"')
        with self.client_path.open('w', encoding='utf-8') as f:
            json.dump(new_data, f, indent=4, ensure_ascii=False)

    @property
    def base_url(self) -> str:
        """The configured API base URL without a trailing slash."""
        return self.client_data.get('api', {}).get('base_url', DEFAULT_BASE_URL).rstrip('/')

    @property
    def timeout(self) -> int:
        """The configured per-request timeout in seconds."""
        return self.client_data.get('api', {}).get('timeout', 20)


settings: SettingsAPI = SettingsAPI()
