"""
Persistent Storage Substrate

The ledger engine reads and writes records through a minimal get/set interface
keyed by DataKey. Two backends are provided:

- InMemoryStorage: a dictionary of records, used by tests and the default server
- JsonFileStorage: one JSON file per storage slot inside a state directory

Both backends hand out copies of the stored records, so an in-flight call that
mutates a record and then fails never changes what is stored. Records are only
replaced by an explicit set().
"""
import json
import os
from pathlib import Path
from typing import Dict, Optional, Protocol, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from mcp.server.fastmcp.utilities.logging import get_logger
from mcp_lumifi.errors import ConfigurationError
from mcp_lumifi.schemas import RECORD_TYPES, DataKey

logger = get_logger(__name__)


class Storage(Protocol):
    def get(self, key: DataKey) -> Optional[BaseModel]:
        ...

    def set(self, key: DataKey, record: BaseModel) -> None:
        ...


def _check_record_type(key: DataKey, record: BaseModel) -> None:
    expected = RECORD_TYPES[key.kind]
    if not isinstance(record, expected):
        raise TypeError(f"Slot {key.slot} holds {expected.__name__}, got {type(record).__name__}")


class InMemoryStorage:
    """Dictionary-backed storage."""

    def __init__(self):
        self._records: Dict[DataKey, BaseModel] = {}

    def get(self, key: DataKey) -> Optional[BaseModel]:
        record = self._records.get(key)
        return record.model_copy(deep=True) if record is not None else None

    def set(self, key: DataKey, record: BaseModel) -> None:
        _check_record_type(key, record)
        self._records[key] = record.model_copy(deep=True)
        logger.debug(f"Stored {key.slot}")

    def has(self, key: DataKey) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)


class JsonFileStorage:
    """
    Stores each record as '<Kind>_<value>.json' inside state_dir.

    Writes go to a temporary file first and are moved into place with
    os.replace, so a slot always holds either the old or the new record.
    """

    def __init__(self, state_dir: Union[str, Path]):
        self.state_dir = Path(state_dir)
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Cannot create ledger state directory {self.state_dir}: {e}")
        logger.info(f"Using ledger state directory: {self.state_dir.resolve()}")

    def _path(self, key: DataKey) -> Path:
        return self.state_dir / f"{key.slot}.json"

    def get(self, key: DataKey) -> Optional[BaseModel]:
        file_path = self._path(key)
        if not file_path.is_file():
            return None
        try:
            with open(file_path, "r") as f:
                data = json.load(f)
            return RECORD_TYPES[key.kind].model_validate(data)
        except json.JSONDecodeError:
            logger.error(f"Error decoding JSON from ledger slot: {file_path}")
            raise
        except PydanticValidationError as e:
            logger.error(f"Invalid record in ledger slot {file_path}: {e}")
            raise

    def set(self, key: DataKey, record: BaseModel) -> None:
        _check_record_type(key, record)
        file_path = self._path(key)
        tmp_path = file_path.with_suffix(".json.tmp")
        with open(tmp_path, "w") as f:
            json.dump(record.model_dump(mode="json"), f, indent=4)
        os.replace(tmp_path, file_path)
        logger.debug(f"Saved ledger slot {file_path.name}")

    def has(self, key: DataKey) -> bool:
        return self._path(key).is_file()
