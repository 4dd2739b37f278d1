"""
JSON Schema Contract Validators

Модуль для валидации заголовков сетевых пакетов согласно формальным
JSON Schema контрактам. Использует библиотеку jsonschema.

Схемы (src/core/contracts/schema/):
- packet_envelope.json — поля trackid/time пакета DTMI2 / DTP2
"""

import json
from pathlib import Path
from typing import Any, Dict

import jsonschema
from jsonschema import Draft202012Validator


# =============================================================================
# SCHEMA LOADER
# =============================================================================


class SchemaLoader:
    """
    Загрузчик JSON Schema файлов.

    Схемы лежат в каталоге schema/ рядом с этим модулем.
    """

    def __init__(self, schema_dir: Path | None = None):
        self._schema_dir = schema_dir or Path(__file__).parent / "schema"
        if not self._schema_dir.exists():
            raise RuntimeError(f"Schema directory not found: {self._schema_dir}")

        # Кэш загруженных схем
        self._schemas: Dict[str, Dict[str, Any]] = {}

    def load_schema(self, schema_name: str) -> Dict[str, Any]:
        """
        Загрузка JSON Schema файла.

        Args:
            schema_name: Имя схемы без расширения (например, 'packet_envelope')

        Returns:
            Загруженная схема как dict

        Raises:
            FileNotFoundError: Если файл схемы не найден
            ValueError: Если схема не проходит meta-validation
        """
        if schema_name in self._schemas:
            return self._schemas[schema_name]

        schema_path = self._schema_dir / f"{schema_name}.json"
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema not found: {schema_path}")

        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)

        try:
            Draft202012Validator.check_schema(schema)
        except jsonschema.SchemaError as e:
            raise ValueError(f"Invalid JSON Schema in {schema_name}.json: {e}")

        self._schemas[schema_name] = schema
        return schema


# Глобальный экземпляр загрузчика
_SCHEMA_LOADER = SchemaLoader()


# =============================================================================
# CONTRACT VALIDATORS
# =============================================================================


class ContractValidator:
    """
    Базовый класс для валидаторов контрактов.

    Инкапсулирует логику валидации данных против JSON Schema.
    """

    def __init__(self, schema_name: str):
        self.schema_name = schema_name
        self.schema = _SCHEMA_LOADER.load_schema(schema_name)
        self.validator = Draft202012Validator(self.schema)

    def validate(self, data: Dict[str, Any]) -> None:
        """
        Валидация данных против схемы.

        Raises:
            ValidationError: Если данные не соответствуют схеме
        """
        self.validator.validate(data)


class PacketEnvelopeValidator(ContractValidator):
    """Валидатор заголовка пакета (trackid + time)."""

    def __init__(self):
        super().__init__("packet_envelope")


_PACKET_ENVELOPE_VALIDATOR: PacketEnvelopeValidator | None = None


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def validate_packet_envelope(data: Dict[str, Any]) -> None:
    """
    Валидация заголовка пакета.

    Args:
        data: {"trackid": int, "time": int}

    Raises:
        ValidationError: Если заголовок не соответствует схеме
    """
    global _PACKET_ENVELOPE_VALIDATOR
    if _PACKET_ENVELOPE_VALIDATOR is None:
        _PACKET_ENVELOPE_VALIDATOR = PacketEnvelopeValidator()
    _PACKET_ENVELOPE_VALIDATOR.validate(data)
