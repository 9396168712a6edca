"""Tests for GuardRegistry."""
import pytest

from fsmdsl import GuardRegistry


class TestGuardRegistry:
    """Test cases for guard registration and evaluation."""

    def test_register_and_check(self):
        """A registered predicate receives the event name and payload."""
        registry = GuardRegistry()
        seen = []

        def predicate(event, payload):
            seen.append((event, payload))
            return payload == 'ok'

        registry.register('ready', predicate)

        assert registry.check('ready', 'go', 'ok') is True
        assert registry.check('ready', 'go', 'no') is False
        assert seen == [('go', 'ok'), ('go', 'no')]

    def test_unknown_guard_raises_key_error(self):
        registry = GuardRegistry()
        with pytest.raises(KeyError):
            registry.check('missing')

    def test_default_for_unknown_guards(self):
        assert GuardRegistry(default=False).check('missing') is False
        assert GuardRegistry(default=True).check('missing') is True

    def test_set_constant(self):
        registry = GuardRegistry()
        registry.set('flag', True)
        assert registry('flag', None, None) is True

        registry.set('flag', False)
        assert registry('flag', None, None) is False

    def test_whitespace_insensitive_lookup(self):
        """Guard texts are matched after stripping surrounding whitespace."""
        registry = GuardRegistry()
        registry.set('x > 1', True)
        assert registry.has(' x > 1 ')
        assert registry.check('x > 1 ') is True

    def test_names_in_registration_order(self):
        registry = GuardRegistry()
        registry.set('b', True)
        registry.set('a', False)
        assert registry.names() == ['b', 'a']

    def test_result_coerced_to_bool(self):
        registry = GuardRegistry()
        registry.register('count', lambda event, payload: payload)
        assert registry.check('count', payload=3) is True
        assert registry.check('count', payload=0) is False
