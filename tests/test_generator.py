import random

from walkin_queue.generator import make_guest
from walkin_queue.validation import validate_registration


def test_generated_guests_pass_registration_checks():
    rng = random.Random(1)
    for i in range(60):
        name, phone = make_guest(i, rng)
        assert validate_registration(name, phone) == (name, phone)


def test_generated_names_carry_distinct_suffixes():
    rng = random.Random(1)
    suffixes = [make_guest(i, rng)[0].split()[-1] for i in range(30)]
    assert suffixes[:3] == ["A", "B", "C"]
    assert suffixes[26] == "BA"
    assert len(set(suffixes)) == 30
