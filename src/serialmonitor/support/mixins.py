"""
Value semantics for settings, configurations and the events that carry them.
"""


class ValueObject:
    """
    Instances compare equal when they are of the same type and hold equal attributes.
    Mutable by default, so unhashable; immutable subclasses define __hash__ over what they compare.
    """

    def __eq__(self, other):
        return type(other) is type(self) and vars(self) == vars(other)

    def __ne__(self, other):
        return not self == other

    __hash__ = None

    def __repr__(self):
        fields = ', '.join('%s=%r' % (name.lstrip('_'), value) for name, value in sorted(vars(self).items()))
        return '%s(%s)' % (type(self).__name__, fields)
