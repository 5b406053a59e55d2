"""Tests for sqlcrud.validation module."""

import pydantic
import pytest

from sqlcrud.errors import ValidationError
from sqlcrud.filters import UNDEFINED
from sqlcrud.models import BaseModel
from sqlcrud.validation import NullValidator, SchemaValidator, Validator


class Account(pydantic.BaseModel):
    key: int | None = None
    name: str
    email: str
    status: str | None = None


@pytest.fixture
def validator() -> SchemaValidator:
    return SchemaValidator(Account)


def detail_types(exc_info) -> dict:
    return {detail["field"]: detail["type"] for detail in exc_info.value.details}


class TestProtocol:
    def test_implementations_satisfy_protocol(self, validator):
        assert isinstance(NullValidator(), Validator)
        assert isinstance(validator, Validator)

    def test_null_validator_accepts_everything(self):
        validator = NullValidator()
        validator.validate_create_values([{"anything": object()}])
        validator.validate_modify_values({})
        validator.validate_filter_expression([{"x": []}])


class TestCreateValues:
    def test_valid(self, validator):
        validator.validate_create_values([{"name": "Ada", "email": "ada@example.com"}])

    def test_collects_all_problems(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_create_values([{"name": 1}])

        assert exc_info.value.message == "The submitted values are invalid"
        assert detail_types(exc_info) == {"name": "string_type", "email": "missing"}
        assert all(detail["index"] == 0 for detail in exc_info.value.details)
        assert exc_info.value.field == "name"

    def test_reports_row_index(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_create_values([
                {"name": "Ada", "email": "ada@example.com"},
                {"name": "Brian"},
            ])
        assert exc_info.value.details == [
            {"field": "email", "message": "Field required", "type": "missing", "index": 1},
        ]

    def test_unknown_field(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_create_values([{"name": "Ada", "email": "a@x.io", "nickname": "A"}])
        assert detail_types(exc_info) == {"nickname": "extra_forbidden"}

    def test_strict_mode_rejects_coercion(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_create_values([{"key": "1", "name": "Ada", "email": "a@x.io"}])
        assert detail_types(exc_info) == {"key": "int_type"}

    def test_lax_mode(self):
        SchemaValidator(Account, strict=False).validate_create_values([{"key": "1", "name": "Ada", "email": "a@x.io"}])


class TestModifyValues:
    def test_partial_values_are_valid(self, validator):
        validator.validate_modify_values({"status": "active"})
        validator.validate_modify_values({})

    def test_wrong_type(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_modify_values({"name": 5})
        assert detail_types(exc_info) == {"name": "string_type"}

    def test_unknown_field(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_modify_values({"nickname": "A"})
        assert detail_types(exc_info) == {"nickname": "extra_forbidden"}


class TestFilterExpression:
    @pytest.mark.parametrize(
        "filter_expression",
        [
            None,
            {},
            {"key": 1},
            {"!status": ["active", "deleted"]},
            {"status": None},
            [{"name": "Ada"}, {"key": (1, 2)}],
            {"status": UNDEFINED},
        ],
    )
    def test_valid(self, validator, filter_expression):
        validator.validate_filter_expression(filter_expression)

    def test_array_elements_are_validated(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_filter_expression({"key": [1, "2"]})
        assert detail_types(exc_info) == {"key": "int_type"}

    def test_negated_unknown_field(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_filter_expression([{"key": 1}, {"!nickname": "A"}])
        assert detail_types(exc_info) == {"nickname": "extra_forbidden"}


class TestModelIntegration:
    @pytest.mark.asyncio
    async def test_model_rejects_invalid_values(self, connection):
        accounts = BaseModel(connection, "account", ["key", "name", "email", "status"], validator=SchemaValidator(Account))

        with pytest.raises(ValidationError):
            await accounts.create_one({"name": "Ada"})

        created = await accounts.create_one({"name": "Ada", "email": "ada@example.com"})
        assert created["key"] == 1

        with pytest.raises(ValidationError):
            await accounts.find({"key": "1"})
        assert await accounts.count({"key": 1}) == 1
