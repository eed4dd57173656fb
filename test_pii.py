"""Tests for PII detection"""

import pytest

from agent_guardian.pii import contains_pii, detect_pii, luhn_check, summarize_pii


@pytest.mark.parametrize('value, expected', [
    ('4539148803436467', True),
    ('4539148803436468', False),
    ('4539 1488 0343 6467', True),
    ('4539-1488-0343-6467', True),
    ('4111111111111111', True),
    ('123456789012', False),
    ('', False),
])
def test_luhn_check(value, expected):
    assert luhn_check(value) is expected


def _types(text):
    return {match.type for match in detect_pii(text)}


def test_detects_ssn():
    assert 'ssn' in _types('my ssn is 123-45-6789')


def test_detects_email():
    matches = [m for m in detect_pii('write to jane.doe@example.com today') if m.type == 'email']
    assert [m.value for m in matches] == ['jane.doe@example.com']


def test_detects_phone():
    assert 'phone' in _types('call 555-123-4567')


def test_detects_valid_card_only():
    assert 'credit_card' in _types('card 4539 1488 0343 6467 on file')
    assert 'credit_card' not in _types('card 4539148803436468 on file')


def test_plain_text_has_no_pii():
    assert not contains_pii('hello world')
    assert detect_pii('') == []


def test_summary_lists_kinds_not_values():
    summary = summarize_pii(detect_pii('a@b.io and 123-45-6789'))
    assert 'email' in summary
    assert 'ssn' in summary
    assert 'a@b.io' not in summary


def test_full_width_digits_are_not_pii():
    assert _types('１２３-４５-６７８９') == set()
    assert not luhn_check('４５３９ １４８８ ０３４３ ６４６７')
