import pytest

from walkin_queue.errors import ValidationError
from walkin_queue.validation import validate_name, validate_phone, validate_registration


def test_valid_registration_trims_name():
    assert validate_registration("  Ada Lovelace ", "5551234567") == ("Ada Lovelace", "5551234567")


@pytest.mark.parametrize("name", ["", "   ", "A", " B ", "R2D2", "Ann-Marie"])
def test_bad_names(name):
    assert validate_name(name) is not None


@pytest.mark.parametrize("phone", ["", "555123456", "55512345678", "555-123-4567", "555123456a"])
def test_bad_phones(phone):
    assert validate_phone(phone) is not None


def test_validation_error_lists_each_field():
    with pytest.raises(ValidationError) as exc:
        validate_registration("X", "123")
    assert set(exc.value.errors) == {"name", "phone"}
    assert exc.value.to_response().code == "validation_failed"


@pytest.mark.parametrize("phone", ["١٢٣٤٥٦٧٨٩٠", "５５５１２３４５６７", "5551234567\n", "555123456\n"])
def test_phone_digits_are_ascii_only(phone):
    assert validate_phone(phone) == "Phone number can only contain digits"


@pytest.mark.parametrize("name", ["Zoë", "Ада", "Ada\u00a0Lovelace"])
def test_name_letters_are_ascii_only(name):
    assert validate_name(name) == "Name can only contain letters and spaces"
